import json
import os
from typing import Any, List

from web3 import Web3
from web3.contract import Contract

from .config import ContractType


def get_abi(path: str) -> List[Any]:
    if os.path.isfile(path):
        with open(path, "r") as file:
            abi = json.load(file)

        return abi
    else:
        raise FileNotFoundError(f"File path not found: {path}")


def get_contract(w3: Web3, info: ContractType) -> Contract:
    return w3.eth.contract(address=info["address"], abi=get_abi(info["ABI"]))
