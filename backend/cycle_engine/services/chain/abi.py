"""ABI fragments of the cycle contract, calldata encoding and log decoding."""

from dataclasses import dataclass

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import (
    decode_hex,
    encode_hex,
    function_signature_to_4byte_selector,
    keccak,
    to_checksum_address,
)

from cycle_engine.errors import RevertKind

MATCH_TUPLE = "(uint64,uint64,uint32,uint32,uint32,uint32,uint32,(uint8,uint8))"
RESULT_TUPLE = "(uint8,uint8)"
PREDICTION_TUPLE = "(uint64,uint8,string,uint32)"
SLIP_TUPLE = f"(address,uint256,uint256,{PREDICTION_TUPLE}[10],uint256,uint8,bool)"


@dataclass(frozen=True)
class Function:
    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, *args) -> str:
        return encode_hex(self.selector + encode(list(self.inputs), list(args)))

    def decode_output(self, data: str) -> tuple:
        return decode(list(self.outputs), decode_hex(data))


@dataclass(frozen=True)
class EventParam:
    name: str
    type: str
    indexed: bool = False


@dataclass(frozen=True)
class Event:
    name: str
    params: tuple[EventParam, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.params)})"

    @property
    def topic(self) -> str:
        return encode_hex(keccak(text=self.signature))

    def decode(self, topics: tuple[str, ...], data: str) -> dict:
        """Decode a log's indexed topics and data into named arguments."""
        indexed = [p for p in self.params if p.indexed]
        plain = [p for p in self.params if not p.indexed]
        args = {}
        for param, topic in zip(indexed, topics[1:]):
            args[param.name] = _decode_topic(param.type, topic)
        if plain:
            values = decode([p.type for p in plain], decode_hex(data))
            for param, value in zip(plain, values):
                args[param.name] = _normalise(param.type, value)
        return args


def _decode_topic(abi_type: str, topic: str):
    raw = decode_hex(topic)
    if abi_type == "address":
        return to_checksum_address(raw[-20:])
    return _normalise(abi_type, decode([abi_type], raw)[0])


def _normalise(abi_type: str, value):
    if abi_type == "address":
        return to_checksum_address(value)
    return value


START_DAILY_CYCLE = Function("startDailyCycle", (f"{MATCH_TUPLE}[10]",), ())
RESOLVE_DAILY_CYCLE = Function("resolveDailyCycle", ("uint256", f"{RESULT_TUPLE}[10]"), ())
DAILY_CYCLE_ID = Function("dailyCycleId", (), ("uint256",))
DAILY_CYCLE_END_TIMES = Function("dailyCycleEndTimes", ("uint256",), ("uint256",))
GET_CYCLE_STATUS = Function(
    "getCycleStatus",
    ("uint256",),
    ("bool", "uint8", "uint256", "uint256", "uint32", "bool"),
)
GET_DAILY_MATCHES = Function("getDailyMatches", ("uint256",), (f"{MATCH_TUPLE}[10]",))
GET_SLIP = Function("getSlip", ("uint256",), (SLIP_TUPLE,))
SLIP_COUNT = Function("slipCount", (), ("uint256",))

CYCLE_STARTED = Event("CycleStarted", (
    EventParam("cycleId", "uint256", indexed=True),
    EventParam("endTime", "uint256"),
))
SLIP_PLACED = Event("SlipPlaced", (
    EventParam("cycleId", "uint256", indexed=True),
    EventParam("player", "address", indexed=True),
    EventParam("slipId", "uint256", indexed=True),
))
CYCLE_RESOLVED = Event("CycleResolved", (
    EventParam("cycleId", "uint256", indexed=True),
    EventParam("prizePool", "uint256"),
))
SLIP_EVALUATED = Event("SlipEvaluated", (
    EventParam("slipId", "uint256", indexed=True),
    EventParam("player", "address", indexed=True),
    EventParam("cycleId", "uint256", indexed=True),
    EventParam("correctCount", "uint8"),
    EventParam("finalScore", "uint256"),
))
PRIZE_CLAIMED = Event("PrizeClaimed", (
    EventParam("cycleId", "uint256", indexed=True),
    EventParam("player", "address", indexed=True),
    EventParam("rank", "uint256"),
    EventParam("amount", "uint256"),
))

EVENTS_BY_TOPIC = {
    event.topic: event
    for event in (CYCLE_STARTED, SLIP_PLACED, CYCLE_RESOLVED, SLIP_EVALUATED, PRIZE_CLAIMED)
}


# Revert payload decoding
ERROR_STRING_SELECTOR = "0x08c379a0"
PANIC_SELECTOR = "0x4e487b71"

CUSTOM_ERRORS = {
    encode_hex(function_signature_to_4byte_selector(sig)): kind
    for sig, kind in (
        ("InvalidState()", RevertKind.INVALID_STATE),
        ("InvalidCycleState()", RevertKind.INVALID_STATE),
        ("CycleNotEnded()", RevertKind.TIMING_NOT_MET),
        ("TimingNotMet()", RevertKind.TIMING_NOT_MET),
        ("MatchesNotFinished()", RevertKind.TIMING_NOT_MET),
        ("NotOracle()", RevertKind.NOT_ORACLE),
        ("Unauthorized()", RevertKind.NOT_ORACLE),
        ("AlreadyResolved()", RevertKind.ALREADY_RESOLVED),
        ("CycleAlreadyResolved()", RevertKind.ALREADY_RESOLVED),
        ("InvalidArrayLength()", RevertKind.ARRAY_LENGTH),
        ("ArrayLength()", RevertKind.ARRAY_LENGTH),
    )
}

# Checked in order; "already resolved" must win over the generic state match
REASON_KEYWORDS = (
    (RevertKind.NOT_ORACLE, ("only oracle", "not oracle", "notoracle", "unauthorized", "caller is not")),
    (RevertKind.ALREADY_RESOLVED, ("already resolved", "alreadyresolved")),
    (RevertKind.ARRAY_LENGTH, ("array length", "arraylength", "exactly 10", "invalid length")),
    (RevertKind.TIMING_NOT_MET, ("not ended", "too early", "not finished", "timing", "not yet")),
    (RevertKind.INVALID_STATE, ("invalid state", "invalidstate", "not active", "wrong state", "cycle state")),
)


def decode_revert_data(data: str | None) -> tuple[RevertKind | None, str]:
    """Decode a revert payload into (kind from custom error, reason text)."""
    if not data or len(data) < 10:
        return None, ""
    selector = data[:10].lower()
    if selector == ERROR_STRING_SELECTOR:
        try:
            (reason,) = decode(["string"], decode_hex(data[10:]))
        except DecodingError:
            return None, ""
        return None, reason
    if selector == PANIC_SELECTOR:
        return RevertKind.OTHER, f"panic {data[10:]}"
    return CUSTOM_ERRORS.get(selector), ""


def classify_revert(message: str, data: str | None = None) -> tuple[RevertKind, str]:
    """Map an RPC error message and revert payload to a ``RevertKind``."""
    kind, reason = decode_revert_data(data)
    if kind is not None:
        return kind, reason or message
    text = (reason or message or "").lower()
    for candidate, keywords in REASON_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return candidate, reason or message
    return RevertKind.OTHER, reason or message
