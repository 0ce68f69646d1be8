"""
Batch runner: collects due items and runs fetch -> history -> decide -> dispatch for each
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from pricewatch.core.config import settings
from pricewatch.services.alert_lifecycle import Alert, AlertSource, create_alert, dismiss, expire, mark_read
from pricewatch.services.alert_rules import decide_alert
from pricewatch.services.errors import (
    AlertNotFoundError,
    ItemNotTrackableError,
    NoObservationsError,
    PriceFetchError,
)
from pricewatch.services.notification_service import NotificationDispatcher
from pricewatch.services.price_fetcher import PriceFetcher
from pricewatch.services.price_history import (
    CheckFrequency,
    ItemStatus,
    PriceObservation,
    TrackedItem,
    cutoff_for,
    mark_purchased,
    record_observation,
    select_best_price,
    touch,
    update_source,
)
from pricewatch.services.repository import Repository

logger = logging.getLogger(__name__)


class ResultStatus:
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class ItemResult:
    """What happened to one item in a cycle"""
    item_id: str
    status: str
    old_price: Optional[float] = None
    new_price: Optional[float] = None
    source: Optional[str] = None
    alert_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CycleReport:
    """Summary of one pass over a set of items"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[ItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def updated(self) -> int:
        return sum(1 for r in self.results if r.status == ResultStatus.UPDATED)

    @property
    def unchanged(self) -> int:
        return sum(1 for r in self.results if r.status == ResultStatus.UNCHANGED)

    @property
    def errored(self) -> int:
        return sum(1 for r in self.results if r.status == ResultStatus.ERROR)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == ResultStatus.SKIPPED)

    @property
    def successful(self) -> int:
        return self.updated + self.unchanged

    @property
    def alerts_created(self) -> int:
        return sum(1 for r in self.results if r.alert_id)

    @property
    def errors(self) -> Dict[str, str]:
        return {r.item_id: r.error or "" for r in self.results if r.status == ResultStatus.ERROR}

    def to_dict(self) -> Dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "successful": self.successful,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "errored": self.errored,
            "skipped": self.skipped,
            "alerts_created": self.alerts_created,
            "errors": self.errors,
        }


def create_batches(items: List[TrackedItem], batch_size: int) -> List[List[TrackedItem]]:
    return [items[i:i + batch_size] for i in range(0, len(items), batch_size)]


class BatchRunner:
    """Runs price checks over due items in sequential batches of concurrent work"""

    def __init__(
        self,
        repository: Repository,
        fetcher: PriceFetcher,
        dispatcher: NotificationDispatcher,
        batch_size: Optional[int] = None,
        concurrency_limit: Optional[int] = None,
        batch_delay: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self.batch_size = batch_size or settings.TRACKING_BATCH_SIZE
        self.concurrency_limit = concurrency_limit or settings.TRACKING_MAX_CONCURRENCY
        self.batch_delay = settings.TRACKING_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        self.clock = clock
        self.tier_limits = {
            CheckFrequency.HOURLY: settings.TRACKING_HOURLY_LIMIT,
            CheckFrequency.DAILY: settings.TRACKING_DAILY_LIMIT,
            CheckFrequency.WEEKLY: settings.TRACKING_WEEKLY_LIMIT,
        }

    async def get_due_items(self) -> List[TrackedItem]:
        """Due items from every frequency tier, each item at most once"""
        now = self.clock()
        seen = set()
        due: List[TrackedItem] = []
        for frequency in CheckFrequency:
            items = await self.repository.find_due_items(
                frequency, cutoff_for(frequency, now), self.tier_limits[frequency]
            )
            for item in items:
                if item.id not in seen:
                    seen.add(item.id)
                    due.append(item)
        return due

    async def run_cycle(self, cancel_event: Optional[asyncio.Event] = None) -> CycleReport:
        """
        Check every due item.

        Batches run one after another with ``batch_delay`` seconds between them;
        items inside a batch run concurrently up to ``concurrency_limit``.
        Setting ``cancel_event`` stops new items from starting; items already in
        flight finish normally and the rest are reported as skipped.
        """
        report = CycleReport(started_at=self.clock())
        logger.info("Starting price check cycle")

        items = await self.get_due_items()
        if not items:
            logger.info("No items need price checking at this time")
            report.finished_at = self.clock()
            return report

        logger.info(f"Found {len(items)} items to check")
        batches = create_batches(items, self.batch_size)
        for index, batch in enumerate(batches):
            if cancel_event is not None and cancel_event.is_set():
                report.results.extend(ItemResult(item.id, ResultStatus.SKIPPED) for item in batch)
                continue

            results = await self.process_batch(batch, cancel_event)
            report.results.extend(results)

            if index < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        report.finished_at = self.clock()
        logger.info(
            f"Price check cycle completed: {report.successful}/{report.total} successful, "
            f"{report.updated} updated, {report.errored} errors, {report.alerts_created} alerts"
        )
        return report

    async def process_batch(self, items: List[TrackedItem],
                            cancel_event: Optional[asyncio.Event] = None) -> List[ItemResult]:
        semaphore = asyncio.Semaphore(self.concurrency_limit)

        async def run(item: TrackedItem) -> ItemResult:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return ItemResult(item.id, ResultStatus.SKIPPED)
                return await self._check_isolated(item)

        results = await asyncio.gather(*(run(item) for item in items))
        successful = sum(1 for r in results if r.status in (ResultStatus.UPDATED, ResultStatus.UNCHANGED))
        logger.info(f"Processed batch: {successful}/{len(items)} successful")
        return list(results)

    async def _check_isolated(self, item: TrackedItem) -> ItemResult:
        try:
            return await self.check_item(item)
        except Exception as e:
            logger.error(f"Failed to check price for item {item.id} ({item.product.name}): {e}")
            return ItemResult(item.id, ResultStatus.ERROR, old_price=item.current_price, error=str(e))

    async def check_item(self, item: TrackedItem) -> ItemResult:
        """
        Run the full pipeline for one item.

        Raises:
            NoObservationsError: no source answered (last_checked is still advanced)
            RepositoryError: a save failed; the item stays due for the next cycle
        """
        observations = await self._fetch_observations(item)
        now = self.clock()
        for observation in observations:
            item = update_source(item, observation, now)

        if not observations:
            await self.repository.save_item(touch(item, now))
            raise NoObservationsError(f"No source returned a price for item {item.id}")

        best = select_best_price(observations)
        old_price = item.current_price
        item = record_observation(
            item, best.price, best.source_name, now, url=best.url, availability=best.availability
        )

        if best.price == old_price:
            await self.repository.save_item(item)
            return ItemResult(item.id, ResultStatus.UNCHANGED, old_price=old_price, new_price=best.price,
                              source=best.source_name)

        await self.repository.save_item(item)
        logger.info(
            f"Price updated for item {item.id} ({item.product.name}): "
            f"{old_price} -> {best.price} via {best.source_name}"
        )

        result = ItemResult(item.id, ResultStatus.UPDATED, old_price=old_price, new_price=best.price,
                            source=best.source_name)
        alert = await self._raise_alert(item, old_price, best)
        if alert is not None:
            result.alert_id = alert.id
        return result

    async def _fetch_observations(self, item: TrackedItem) -> List[PriceObservation]:
        sources = item.active_sources
        outcomes = await asyncio.gather(
            *(self.fetcher.fetch_price(item, source) for source in sources),
            return_exceptions=True,
        )
        observations = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, PriceFetchError):
                logger.warning(f"Price fetch failed for item {item.id} from {source.domain}: {outcome}")
            elif isinstance(outcome, Exception):
                logger.warning(f"Unexpected fetch error for item {item.id} from {source.domain}: {outcome!r}")
            else:
                observations.append(outcome)
        return observations

    async def _raise_alert(self, item: TrackedItem, old_price: float,
                           best: PriceObservation) -> Optional[Alert]:
        decision = decide_alert(old_price, best.price, item.alert_settings)
        if decision is None:
            return None

        now = self.clock()
        alert = create_alert(
            item, decision, AlertSource(name=best.source_name, domain=best.domain, url=best.url), now
        )
        alert = await self.repository.save_alert(alert)
        logger.info(
            f"{alert.alert_type.value} alert {alert.id} created for item {item.id} "
            f"(priority {alert.priority.value})"
        )

        result = await self.dispatcher.dispatch(alert)
        alert = await self.repository.save_alert(result.alert)

        settings_with_stamp = replace(item.alert_settings, last_alert_sent=now)
        await self.repository.save_item(replace(item, alert_settings=settings_with_stamp))
        return alert

    async def check_single_item(self, item_id: str) -> ItemResult:
        """
        Out-of-cycle check for one item.

        A check where no source answers comes back as an error result, the same
        way it is reported inside a cycle. Other failures propagate.
        """
        item = await self.repository.get_item(item_id)
        if item is None or not item.is_eligible:
            raise ItemNotTrackableError(f"Item {item_id} not found or not trackable")

        try:
            result = await self.check_item(item)
        except NoObservationsError as e:
            logger.warning(f"Manual price check for item {item_id} got no prices: {e}")
            return ItemResult(item.id, ResultStatus.ERROR, old_price=item.current_price, error=str(e))
        logger.info(f"Manual price check completed for item {item_id}: {result.status}")
        return result

    async def mark_item_purchased(self, item_id: str, purchase_price: Optional[float] = None) -> TrackedItem:
        """Stop tracking an active item; the purchase price defaults to the current price"""
        item = await self.repository.get_item(item_id)
        if item is None or item.status != ItemStatus.ACTIVE:
            raise ItemNotTrackableError(f"Active item {item_id} not found")

        purchased = mark_purchased(item, self.clock(), purchase_price)
        await self.repository.save_item(purchased)
        logger.info(f"Item {item_id} marked as purchased at {purchased.purchase_price:.2f}")
        return purchased

    async def check_user_items(self, user_id: str) -> CycleReport:
        """Out-of-cycle check of a user's active items, one at a time"""
        report = CycleReport(started_at=self.clock())
        items = await self.repository.find_user_items(user_id, settings.USER_CHECK_LIMIT)
        for item in items:
            report.results.append(await self._check_isolated(item))
        report.finished_at = self.clock()
        logger.info(f"Bulk price check completed for user {user_id}: {report.successful}/{report.total} successful")
        return report

    async def retry_pending_alerts(self) -> int:
        """Re-dispatch pending, unexpired alerts; returns how many were processed"""
        alerts = await self.repository.find_pending_alerts(self.clock(), settings.PENDING_ALERT_BATCH_LIMIT)
        processed = 0
        for alert in alerts:
            try:
                result = await self.dispatcher.dispatch(alert)
                await self.repository.save_alert(result.alert)
                processed += 1
            except Exception as e:
                logger.error(f"Failed to process pending alert {alert.id}: {e}")
        if alerts:
            logger.info(f"Processed {processed}/{len(alerts)} pending alerts")
        return processed

    async def expire_alerts(self) -> int:
        """Sweep expired pending alerts to failed; returns how many were swept"""
        now = self.clock()
        alerts = await self.repository.find_expired_alerts(now, settings.PENDING_ALERT_BATCH_LIMIT)
        swept = 0
        for alert in alerts:
            await self.repository.save_alert(expire(alert, now))
            swept += 1
        if swept:
            logger.info(f"Expired {swept} pending alerts")
        return swept

    async def _load_alert(self, alert_id: str) -> Alert:
        alert = await self.repository.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert {alert_id} not found")
        return alert

    async def dismiss_alert(self, alert_id: str) -> Alert:
        """Dismiss an alert; dismissing twice is harmless"""
        alert = await self._load_alert(alert_id)
        dismissed = dismiss(alert)
        if dismissed is alert:
            return alert
        logger.info(f"Alert {alert_id} dismissed")
        return await self.repository.save_alert(dismissed)

    async def mark_alert_read(self, alert_id: str) -> Alert:
        alert = await self._load_alert(alert_id)
        updated = mark_read(alert, self.clock())
        if updated is alert:
            return alert
        return await self.repository.save_alert(updated)
