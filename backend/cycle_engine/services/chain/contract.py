"""Typed adapter over the daily cycle contract."""

import asyncio
import time
from collections.abc import AsyncIterator

import structlog
from eth_abi import encode
from eth_account import Account
from eth_utils import encode_hex, to_checksum_address

from cycle_engine.config import settings
from cycle_engine.errors import (
    ChainRevertError,
    InvariantViolation,
    ReceiptTimeoutError,
    RevertKind,
    TransientError,
)
from cycle_engine.schemas.chain import (
    ChainPrediction,
    CycleStatus,
    LogEntry,
    MatchInput,
    ResultPair,
    SlipData,
    TxReceipt,
)
from cycle_engine.schemas.outcomes import BetType, CycleState
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.chain import abi
from cycle_engine.services.chain.rpc import JsonRpcClient, RpcCallError

logger = structlog.get_logger()


def uint_topic(value: int) -> str:
    """Topic encoding of an indexed uint256."""
    return encode_hex(encode(["uint256"], [value]))


class CycleContract:
    """Reads and oracle writes against the cycle contract.

    Every write estimates gas first, adds a fixed buffer and is signed with
    the oracle key. Writes are never retried here.
    """

    def __init__(
        self,
        rpc: JsonRpcClient | None = None,
        address: str | None = None,
        private_key: str | None = None,
        chain_id: int | None = None,
        gas_buffer: int | None = None,
        receipt_timeout: float | None = None,
        receipt_poll: float | None = None,
        batch_blocks: int | None = None,
    ):
        self.rpc = rpc or JsonRpcClient()
        self.address = to_checksum_address(address or settings.oddyssey_address)
        key = private_key if private_key is not None else settings.oracle_private_key
        self.account = Account.from_key(key) if key else None
        self.chain_id = chain_id or settings.chain_id
        self.gas_buffer = settings.gas_buffer if gas_buffer is None else gas_buffer
        self.receipt_timeout = receipt_timeout or settings.receipt_timeout_seconds
        self.receipt_poll = receipt_poll or settings.receipt_poll_seconds
        self.batch_blocks = min(batch_blocks or settings.log_batch_blocks, 100)

    # Reads

    async def _call(self, fn: abi.Function, *args) -> tuple:
        try:
            raw = await self.rpc.eth_call(self.address, fn.encode_call(*args))
        except RpcCallError as e:
            raise self._revert_error(e) from e
        if not raw or raw == "0x":
            raise TransientError(f"{fn.name} returned no data")
        return fn.decode_output(raw)

    async def read_current_cycle_id(self) -> int:
        (cycle_id,) = await self._call(abi.DAILY_CYCLE_ID)
        return int(cycle_id)

    async def read_cycle_status(self, cycle_id: int) -> CycleStatus:
        exists, state, end_time, prize_pool, slip_count, has_winner = await self._call(
            abi.GET_CYCLE_STATUS, cycle_id
        )
        return CycleStatus(
            exists=bool(exists),
            state=CycleState(int(state)),
            end_time=int(end_time),
            prize_pool=int(prize_pool),
            slip_count=int(slip_count),
            has_winner=bool(has_winner),
        )

    async def read_cycle_end_time(self, cycle_id: int) -> int:
        (end_time,) = await self._call(abi.DAILY_CYCLE_END_TIMES, cycle_id)
        return int(end_time)

    async def read_daily_matches(self, cycle_id: int) -> TenSlots[MatchInput]:
        (matches,) = await self._call(abi.GET_DAILY_MATCHES, cycle_id)
        return TenSlots(MatchInput.from_abi(m) for m in matches)

    async def read_match_start_times(self, cycle_id: int) -> TenSlots[int]:
        matches = await self.read_daily_matches(cycle_id)
        return matches.map(lambda m: m.start_time)

    async def read_slip(self, slip_id: int) -> SlipData:
        ((player, cycle_id, placed_at, predictions, final_score, correct_count, is_evaluated),) = (
            await self._call(abi.GET_SLIP, slip_id)
        )
        return SlipData(
            slip_id=slip_id,
            player=to_checksum_address(player),
            cycle_id=int(cycle_id),
            placed_at=int(placed_at),
            predictions=TenSlots(
                ChainPrediction(
                    match_id=int(p[0]),
                    bet_type=BetType(int(p[1])),
                    selection=p[2],
                    selected_odd=int(p[3]),
                )
                for p in predictions
            ),
            final_score=int(final_score),
            correct_count=int(correct_count),
            is_evaluated=bool(is_evaluated),
        )

    async def read_slip_count(self) -> int:
        (count,) = await self._call(abi.SLIP_COUNT)
        return int(count)

    async def head_block(self) -> int:
        return await self.rpc.block_number()

    async def current_block_time(self) -> int:
        block = await self.rpc.get_block("latest")
        return int(block["timestamp"], 16)

    async def block_timestamp(self, block_number: int) -> int:
        block = await self.rpc.get_block(block_number)
        return int(block["timestamp"], 16)

    # Logs

    async def get_logs(self, from_block: int, to_block: int, topics: list | None = None) -> list[LogEntry]:
        raw = await self.rpc.get_logs(self.address, from_block, to_block, topics)
        logs = [LogEntry.from_rpc(entry) for entry in raw]
        return sorted(logs, key=lambda log: (log.block_number, log.log_index))

    async def subscribe_logs(
        self,
        from_block: int,
        topics: list | None = None,
        to_block: int | None = None,
    ) -> AsyncIterator[tuple[int, list[LogEntry]]]:
        """Yield ``(batch_end_block, logs)`` in windows of at most 100 blocks."""
        head = to_block if to_block is not None else await self.head_block()
        start = from_block
        while start <= head:
            end = min(start + self.batch_blocks - 1, head)
            yield end, await self.get_logs(start, end, topics)
            start = end + 1

    async def find_cycle_resolved(self, cycle_id: int, from_block: int) -> dict | None:
        """Locate the ``CycleResolved`` log for a cycle at or after ``from_block``."""
        topics = [abi.CYCLE_RESOLVED.topic, uint_topic(cycle_id)]
        async for _, logs in self.subscribe_logs(from_block, topics):
            for log in logs:
                args = abi.CYCLE_RESOLVED.decode(log.topics, log.data)
                return {
                    "tx_hash": log.tx_hash,
                    "block_number": log.block_number,
                    "block_timestamp": await self.block_timestamp(log.block_number),
                    "prize_pool": int(args["prizePool"]),
                }
        return None

    # Writes

    async def start_cycle(self, matches: TenSlots[MatchInput]) -> TxReceipt:
        if not isinstance(matches, TenSlots):
            matches = TenSlots(matches)
        return await self._transact(abi.START_DAILY_CYCLE, [m.as_abi() for m in matches])

    async def resolve_cycle(self, cycle_id: int, results: TenSlots[ResultPair]) -> TxReceipt:
        if not isinstance(results, TenSlots):
            results = TenSlots(results)
        unset = [i for i, pair in enumerate(results) if not pair.is_set]
        if unset:
            raise InvariantViolation(
                "result_not_set",
                f"Cycle {cycle_id} has NotSet results in slots {unset}",
                cycle_id=cycle_id,
                slots=unset,
            )
        return await self._transact(abi.RESOLVE_DAILY_CYCLE, cycle_id, [r.as_abi() for r in results])

    async def _transact(self, fn: abi.Function, *args) -> TxReceipt:
        if self.account is None:
            raise InvariantViolation("oracle_key_missing", "ORACLE_PRIVATE_KEY is not configured")

        data = fn.encode_call(*args)
        call = {"from": self.account.address, "to": self.address, "data": data}

        try:
            estimate = int(await self.rpc.read("eth_estimateGas", [call]), 16)
        except RpcCallError as e:
            raise self._revert_error(e) from e

        gas_price = int(await self.rpc.read("eth_gasPrice", []), 16)
        nonce = int(await self.rpc.read("eth_getTransactionCount", [self.account.address, "pending"]), 16)
        gas = estimate + self.gas_buffer

        signed = self.account.sign_transaction({
            "to": self.address,
            "data": data,
            "value": 0,
            "gas": gas,
            "gasPrice": gas_price,
            "nonce": nonce,
            "chainId": self.chain_id,
        })
        try:
            tx_hash = await self.rpc.request("eth_sendRawTransaction", [encode_hex(signed.raw_transaction)])
        except RpcCallError as e:
            raise self._revert_error(e) from e

        logger.info(
            "Submitted oracle transaction",
            function=fn.name,
            tx_hash=tx_hash,
            gas=gas,
            gas_estimate=estimate,
            nonce=nonce,
        )

        receipt = await self.wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            kind, reason = await self._replay_revert(call, receipt.block_number)
            raise ChainRevertError(kind, reason, tx_hash=receipt.tx_hash)
        logger.info(
            "Oracle transaction mined",
            function=fn.name,
            tx_hash=receipt.tx_hash,
            block=receipt.block_number,
            gas_used=receipt.gas_used,
        )
        return receipt

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        deadline = time.monotonic() + self.receipt_timeout
        while True:
            raw = await self.rpc.get_transaction_receipt(tx_hash)
            if raw:
                return TxReceipt.from_rpc(raw)
            if time.monotonic() >= deadline:
                raise ReceiptTimeoutError(tx_hash, self.receipt_timeout)
            await asyncio.sleep(self.receipt_poll)

    async def _replay_revert(self, call: dict, block_number: int) -> tuple[RevertKind, str]:
        """Re-run a failed transaction as a call to recover its revert reason."""
        try:
            await self.rpc.request("eth_call", [call, hex(block_number)])
        except RpcCallError as e:
            return abi.classify_revert(e.message, e.data)
        except TransientError:
            pass
        return RevertKind.OTHER, "transaction reverted on-chain"

    @staticmethod
    def _revert_error(error: RpcCallError) -> ChainRevertError:
        kind, reason = abi.classify_revert(error.message, error.data)
        return ChainRevertError(kind, reason)
