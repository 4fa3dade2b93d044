"""Pure decoding functions for PBALend logs — no I/O."""
from __future__ import annotations

import logging
from typing import Any

from web3 import Web3

from ...errors import MalformedEventError
from ...events import (
    Borrow,
    Deposit,
    LendingEvent,
    LogPosition,
    MarketCreated,
    Repay,
    Withdraw,
    WithdrawCollateral,
)

logger = logging.getLogger(__name__)

# (event class, canonical signature, indexed field names, data field names)
# Field order follows the contract ABI.
EVENT_ABI: tuple[tuple[type, str, tuple[str, ...], tuple[str, ...]], ...] = (
    (
        MarketCreated,
        "MarketCreated(address,address,uint256,uint256)",
        ("loan_token", "collateral_token"),
        ("interest_rate", "ltv"),
    ),
    (
        Deposit,
        "Deposit(address,address,address,uint256,uint256)",
        ("loan_token", "collateral_token", "user"),
        ("amount", "shares"),
    ),
    (
        Borrow,
        "Borrow(address,address,address,uint256,uint256,uint256)",
        ("loan_token", "collateral_token", "user"),
        ("amount", "shares", "collateral_amount"),
    ),
    (
        Repay,
        "Repay(address,address,address,uint256,uint256)",
        ("loan_token", "collateral_token", "user"),
        ("shares", "amount"),
    ),
    (
        Withdraw,
        "Withdraw(address,address,address,uint256,uint256)",
        ("loan_token", "collateral_token", "user"),
        ("amount", "shares"),
    ),
    (
        WithdrawCollateral,
        "WithdrawCollateral(address,address,address,uint256)",
        ("loan_token", "collateral_token", "user"),
        ("amount",),
    ),
)


def event_topic(signature: str) -> str:
    """keccak256 of an event signature as a 0x-prefixed lower-case hex string."""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


TOPIC_TO_EVENT: dict[str, tuple[type, tuple[str, ...], tuple[str, ...]]] = {
    event_topic(signature): (cls, indexed, data)
    for cls, signature, indexed, data in EVENT_ABI
}


def _hex_to_int(value: Any, name: str) -> int:
    if isinstance(value, int):
        return value
    try:
        return int(value, 16)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(f"{name} is not a hex quantity: {value!r}") from e


def topic_to_address(topic: str) -> str:
    """Extract the address from a 32-byte indexed topic.

    Example:
        "0x000000000000000000000000a0b8...eb48" → "0xa0b8...eb48"
    """
    if not isinstance(topic, str) or len(topic) != 66:
        raise MalformedEventError(f"Indexed topic is not 32 bytes: {topic!r}")
    return "0x" + topic[-40:].lower()


def decode_words(data: str, count: int) -> list[int]:
    """Split ABI-encoded data into *count* uint256 words."""
    body = data[2:] if data.startswith("0x") else data
    if len(body) < count * 64:
        raise MalformedEventError(
            f"Log data has {len(body) // 64} words, expected {count}"
        )
    try:
        return [int(body[i * 64:(i + 1) * 64], 16) for i in range(count)]
    except ValueError as e:
        raise MalformedEventError(f"Log data is not hex: {data!r}") from e


def log_position(log: dict[str, Any]) -> LogPosition:
    return LogPosition(
        block_number=_hex_to_int(log.get("blockNumber"), "blockNumber"),
        log_index=_hex_to_int(log.get("logIndex"), "logIndex"),
    )


def decode_log(log: dict[str, Any]) -> LendingEvent | None:
    """Decode one ``eth_getLogs`` entry into a typed event.

    Returns ``None`` for logs that are not PBALend events or were removed by
    a reorg; raises ``MalformedEventError`` for PBALend logs that do not
    match the ABI.
    """
    topics = log.get("topics") or []
    if not topics:
        return None

    spec = TOPIC_TO_EVENT.get(str(topics[0]).lower())
    if spec is None:
        logger.debug("Skipping log with unknown topic %s", topics[0])
        return None
    cls, indexed, data_fields = spec

    position = log_position(log)
    if log.get("removed"):
        logger.warning("Skipping removed %s log at %s", cls.__name__, position)
        return None

    if len(topics) != len(indexed) + 1:
        raise MalformedEventError(
            f"{cls.__name__} at {position} has {len(topics) - 1} indexed topics, "
            f"expected {len(indexed)}"
        )

    kwargs: dict[str, Any] = {
        name: topic_to_address(topic) for name, topic in zip(indexed, topics[1:])
    }
    words = decode_words(log.get("data") or "0x", len(data_fields))
    kwargs.update(zip(data_fields, words))

    return cls(**kwargs, position=position)


def all_topics() -> list[str]:
    """topic0 values for every PBALend event, for an ``eth_getLogs`` filter."""
    return list(TOPIC_TO_EVENT)
