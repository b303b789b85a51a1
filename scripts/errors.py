"""
BitRaise error catalogue

The contract rejects calls with asserts whose messages read
``ERR_<KIND>: <condition>``. algod only reports the program counter of the
failing assert, so rejected transactions are decoded here by mapping that
pc back to its message through the ARC-56 app spec emitted by Puya.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Numeric codes shared with BitRaise front-end clients
ERROR_CODES = {
    "ERR_NOT_AUTHORIZED": 100,
    "ERR_CAMPAIGN_NOT_FOUND": 101,
    "ERR_CAMPAIGN_ENDED": 102,
    "ERR_CAMPAIGN_ACTIVE": 103,
    "ERR_INVALID_AMOUNT": 104,
    "ERR_GOAL_NOT_REACHED": 105,
    "ERR_ALREADY_WITHDRAWN": 106,
    "ERR_NO_PLEDGE_FOUND": 107,
    "ERR_ALREADY_REFUNDED": 108,
    "ERR_INVALID_DEADLINE": 109,
    "ERR_INVALID_GOAL": 110,
    "ERR_CONTRACT_PAUSED": 111,
    "ERR_TRANSFER_FAILED": 112,
    "ERR_INVALID_FEE": 113,
}

_MESSAGE_RE = re.compile(r"^(ERR_[A-Z_]+)(?::\s*(.*))?$")
_PC_RE = re.compile(r"pc=(\d+)")


@dataclass(frozen=True)
class ContractError:
    """A decoded contract rejection."""

    code: int
    kind: str
    detail: str

    def __str__(self) -> str:
        if self.detail:
            return f"{self.kind} (u{self.code}): {self.detail}"
        return f"{self.kind} (u{self.code})"


def parse_error_message(message: str) -> Optional[ContractError]:
    """
    Split an assert message into its shared code and discriminator.

    Args:
        message: Assert message, e.g. "ERR_INVALID_AMOUNT: zero pledge"

    Returns:
        ContractError, or None if the message is not a BitRaise error
    """
    match = _MESSAGE_RE.match(message.strip())
    if not match:
        return None

    kind = match.group(1)
    if kind not in ERROR_CODES:
        return None

    return ContractError(code=ERROR_CODES[kind], kind=kind, detail=match.group(2) or "")


def load_error_map(app_spec: dict) -> dict[int, str]:
    """Map approval program counters to assert messages from an ARC-56 app spec."""
    error_map = {}
    source_info = app_spec.get("sourceInfo", {}).get("approval", {}).get("sourceInfo", [])
    for entry in source_info:
        message = entry.get("errorMessage")
        if not message:
            continue
        for pc in entry.get("pc", []):
            error_map[pc] = message
    return error_map


def load_error_map_file(path: Path) -> dict[int, str]:
    with open(path) as f:
        return load_error_map(json.load(f))


def decode_logic_error(error_text: str, error_map: dict[int, str]) -> Optional[ContractError]:
    """
    Decode an algod rejection ("logic eval error: assert failed pc=...").

    Args:
        error_text: Error text returned by algod
        error_map: pc -> message map from load_error_map()

    Returns:
        ContractError, or None if the failure is not a known assert
    """
    match = _PC_RE.search(error_text)
    if not match:
        return None

    message = error_map.get(int(match.group(1)))
    if message is None:
        return None

    return parse_error_message(message)
