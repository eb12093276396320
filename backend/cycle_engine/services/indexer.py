"""Contract event indexer.

Reads logs in batches from the last processed block, records each decoded
event under its ``(tx_hash, log_index)`` key and updates the database
mirror in the same transaction. Re-reading a block range is harmless.
"""

import inspect
from collections.abc import Callable
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker, insert_for
from cycle_engine.models import ChainEvent, Cycle, EventWatermark, PrizeClaim, Slip
from cycle_engine.schemas.chain import LogEntry
from cycle_engine.schemas.outcomes import CyclePhase
from cycle_engine.services.chain import abi
from cycle_engine.timeutil import from_epoch

logger = structlog.get_logger()


def _json_args(args: dict) -> dict:
    return {k: (v if isinstance(v, (str, int, bool)) else str(v)) for k, v in args.items()}


class EventIndexer:
    def __init__(
        self,
        chain,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        on_cycle_resolved: Callable[[int], object] | None = None,
        start_block: int | None = None,
        confirmations: int | None = None,
    ):
        self.chain = chain
        self.session_maker = session_maker
        self.on_cycle_resolved = on_cycle_resolved
        self.contract_address = chain.address.lower()
        self.start_block = settings.indexer_start_block if start_block is None else start_block
        self.confirmations = settings.indexer_confirmations if confirmations is None else confirmations

    async def watermark(self) -> int:
        async with self.session_maker() as session:
            last = await session.scalar(
                select(EventWatermark.last_block).where(
                    EventWatermark.contract_address == self.contract_address
                )
            )
        return self.start_block - 1 if last is None else last

    async def _advance(self, session: AsyncSession, block: int) -> None:
        insert = insert_for(session)
        await session.execute(
            insert(EventWatermark)
            .values(contract_address=self.contract_address, last_block=block)
            .on_conflict_do_update(
                index_elements=["contract_address"],
                set_={"last_block": block},
                where=EventWatermark.last_block < block,
            )
        )

    async def run_once(self) -> dict:
        head = await self.chain.head_block() - self.confirmations
        from_block = await self.watermark() + 1
        if from_block > head:
            return {"status": "completed", "processed": 0, "replayed": 0, "last_block": from_block - 1}

        processed = replayed = 0
        resolved_cycles = []
        last_block = from_block - 1
        async for batch_end, logs in self.chain.subscribe_logs(from_block, None, to_block=head):
            for log in logs:
                event = abi.EVENTS_BY_TOPIC.get(log.topics[0]) if log.topics else None
                if event is None:
                    continue
                applied = await self.apply(log, event)
                if not applied:
                    replayed += 1
                    continue
                processed += 1
                if event is abi.CYCLE_RESOLVED:
                    resolved_cycles.append(int(event.decode(log.topics, log.data)["cycleId"]))

            async with self.session_maker() as session:
                async with session.begin():
                    await self._advance(session, batch_end)
            last_block = batch_end

        for cycle_id in resolved_cycles:
            await self._notify_resolved(cycle_id)

        if processed or replayed:
            logger.info(
                "Indexed contract events",
                from_block=from_block,
                to_block=last_block,
                processed=processed,
                replayed=replayed,
            )
        return {"status": "completed", "processed": processed, "replayed": replayed, "last_block": last_block}

    async def _notify_resolved(self, cycle_id: int) -> None:
        if self.on_cycle_resolved is None:
            return
        result = self.on_cycle_resolved(cycle_id)
        if inspect.isawaitable(result):
            await result

    async def apply(self, log: LogEntry, event: abi.Event) -> bool:
        """Record one event and update the mirror. False if already recorded."""
        args = event.decode(log.topics, log.data)

        async with self.session_maker() as session:
            if await session.get(ChainEvent, (log.tx_hash, log.log_index)) is not None:
                return False

        # Chain reads happen before the transaction opens
        slip = None
        block_time = None
        if event is abi.SLIP_PLACED:
            slip = await self.chain.read_slip(int(args["slipId"]))
        elif event is abi.CYCLE_RESOLVED:
            block_time = await self.chain.block_timestamp(log.block_number)

        async with self.session_maker() as session:
            async with session.begin():
                insert = insert_for(session)
                recorded = await session.execute(
                    insert(ChainEvent)
                    .values(
                        tx_hash=log.tx_hash,
                        log_index=log.log_index,
                        event_name=event.name,
                        cycle_id=int(args["cycleId"]) if "cycleId" in args else None,
                        contract_address=log.address,
                        block_number=log.block_number,
                        args=_json_args(args),
                    )
                    .on_conflict_do_nothing(index_elements=["tx_hash", "log_index"])
                    .returning(ChainEvent.tx_hash)
                )
                if recorded.first() is None:
                    return False

                if event is abi.CYCLE_STARTED:
                    await self._on_cycle_started(session, log, args)
                elif event is abi.SLIP_PLACED:
                    await self._on_slip_placed(session, log, slip)
                elif event is abi.CYCLE_RESOLVED:
                    await self._on_cycle_resolved(session, log, args, block_time)
                elif event is abi.SLIP_EVALUATED:
                    await self._on_slip_evaluated(session, args)
                elif event is abi.PRIZE_CLAIMED:
                    await self._on_prize_claimed(session, log, args)

                await self._advance(session, log.block_number - 1)
        return True

    async def _on_cycle_started(self, session: AsyncSession, log: LogEntry, args: dict) -> None:
        end_time = int(args["endTime"])
        insert = insert_for(session)
        await session.execute(
            insert(Cycle)
            .values(
                cycle_id=int(args["cycleId"]),
                status=CyclePhase.OPEN.value,
                cycle_end_time=from_epoch(end_time),
                end_ts=end_time,
                tx_hash=log.tx_hash,
            )
            .on_conflict_do_nothing(index_elements=["cycle_id"])
        )

    async def _on_slip_placed(self, session: AsyncSession, log: LogEntry, slip) -> None:
        insert = insert_for(session)
        await session.execute(
            insert(Slip)
            .values(
                slip_id=slip.slip_id,
                cycle_id=slip.cycle_id,
                player_address=slip.player,
                placed_at=from_epoch(slip.placed_at),
                predictions=[p.to_dict() for p in slip.predictions],
                tx_hash=log.tx_hash,
            )
            .on_conflict_do_nothing(index_elements=["slip_id"])
        )

    async def _on_cycle_resolved(self, session: AsyncSession, log: LogEntry, args: dict, block_time: int) -> None:
        cycle_id = int(args["cycleId"])
        result = await session.execute(
            update(Cycle)
            .where(Cycle.cycle_id == cycle_id, Cycle.is_resolved.is_(False))
            .values(
                is_resolved=True,
                ready_for_resolution=False,
                status=CyclePhase.RESOLVED.value,
                resolved_at=from_epoch(block_time),
                resolution_tx_hash=log.tx_hash,
                prize_pool=Decimal(int(args["prizePool"])),
            )
        )
        if result.rowcount:
            logger.info("Cycle resolution indexed", cycle_id=cycle_id, tx_hash=log.tx_hash)

    async def _on_slip_evaluated(self, session: AsyncSession, args: dict) -> None:
        await session.execute(
            update(Slip)
            .where(Slip.slip_id == int(args["slipId"]))
            .values(
                onchain_correct_count=int(args["correctCount"]),
                onchain_final_score=Decimal(int(args["finalScore"])),
            )
        )

    async def _on_prize_claimed(self, session: AsyncSession, log: LogEntry, args: dict) -> None:
        cycle_id = int(args["cycleId"])
        player = args["player"]
        insert = insert_for(session)
        await session.execute(
            insert(PrizeClaim)
            .values(
                cycle_id=cycle_id,
                player_address=player,
                rank=int(args["rank"]),
                amount=Decimal(int(args["amount"])),
                tx_hash=log.tx_hash,
            )
            .on_conflict_do_nothing(index_elements=["cycle_id", "player_address"])
        )
        await session.execute(
            update(Slip)
            .where(Slip.cycle_id == cycle_id, Slip.player_address == player)
            .values(prize_claimed=True)
        )
