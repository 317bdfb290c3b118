"""Bot runtime assembly and command line entry point."""

import argparse
import asyncio
import importlib
import inspect
import signal
import sys

import structlog

from ..config.settings import AppSettings, load_settings
from ..core.interfaces import DecisionEngine
from ..core.types import StrategyProfile
from ..data.dexscreener import DexScreenerClient
from ..persist.positions import SQLitePositionStore
from ..persist.watchlists import SQLiteWatchlistStore
from .orchestrator import BotOrchestrator

logger = structlog.get_logger(__name__)


def _accepts_profile(factory) -> bool:
    try:
        return "profile" in inspect.signature(factory).parameters
    except (TypeError, ValueError):
        return False


def load_decision_engine(
    path: str, strategy_profile: StrategyProfile | None = None
) -> DecisionEngine:
    """Import a decision engine from a ``module:attribute`` path.

    The attribute may be an engine instance or a factory (a class, for
    instance) returning one. A factory taking a ``profile`` argument is
    called with ``strategy_profile`` when one is given.

    Raises:
        ValueError: If the path is malformed or the object is not an engine
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid decision engine path: {path!r} (expected module:attribute)")

    try:
        target = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ValueError(f"Cannot load decision engine {path!r}: {e}") from e

    # Classes satisfy the protocol check too, so instantiate them explicitly
    engine = target
    if isinstance(target, type) or (
        callable(target) and not isinstance(target, DecisionEngine)
    ):
        if strategy_profile is not None and _accepts_profile(target):
            engine = target(profile=strategy_profile)
        else:
            engine = target()

    if not isinstance(engine, DecisionEngine):
        raise ValueError(f"{path!r} does not provide an evaluate() coroutine")

    logger.info("Loaded decision engine", path=path, engine=type(engine).__name__)
    return engine


class TradingPipeline:
    """Composition root owning the client, the stores and the orchestrator."""

    def __init__(
        self, settings: AppSettings, decision_engine: DecisionEngine | None = None
    ) -> None:
        """Initialize trading pipeline with assembled components.

        Args:
            settings: Application settings
            decision_engine: Decision engine; loaded from settings when omitted

        Raises:
            ValueError: If no decision engine is available
        """
        self.settings = settings

        if decision_engine is None:
            if not settings.decision_engine:
                raise ValueError(
                    "No decision engine configured. Set decision_engine to a "
                    "module:attribute path."
                )
            decision_engine = load_decision_engine(
                settings.decision_engine, strategy_profile=settings.strategy_profile
            )

        self.market_data = DexScreenerClient(
            base_url=settings.dexscreener_base,
            min_request_interval=settings.request_spacing_ms / 1000,
            cache_ttl=settings.cache_ttl_seconds,
            detail_cache_ttl=settings.detail_cache_ttl_seconds,
            chains=settings.trending_chains,
            timeout=settings.http_timeout_seconds,
        )
        self.positions = SQLitePositionStore(db_path=settings.db_path)
        self.watchlists = SQLiteWatchlistStore(db_path=settings.db_path)

        self.orchestrator = BotOrchestrator(
            market_data=self.market_data,
            decision_engine=decision_engine,
            positions=self.positions,
            watchlists=self.watchlists,
            config=settings.to_bot_config(),
            trending_filters=settings.trending_filters(),
            clip_to_headroom=settings.clip_to_headroom,
        )

        self._stop_event = asyncio.Event()

        logger.info(
            "Trading pipeline initialized",
            env=settings.env,
            db_path=settings.db_path,
            decision_engine=type(decision_engine).__name__,
        )

    async def run_forever(self) -> None:
        """Start the bot and run until stop() is requested."""
        await self.positions.initialize()

        try:
            await self.orchestrator.start()
            await self._stop_event.wait()
        except asyncio.CancelledError:
            logger.info("Pipeline cancelled")
        finally:
            await self.shutdown()

    def request_stop(self) -> None:
        """Ask run_forever() to return."""
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Stop the orchestrator and release resources."""
        logger.info("Stopping trading pipeline")
        await self.orchestrator.stop()
        await self.market_data.aclose()
        await self.positions.close()
        await self.watchlists.close()


async def main() -> None:
    """Main entry point for the trading bot."""
    parser = argparse.ArgumentParser(description="DEX Trading Bot")
    parser.add_argument(
        "--config", default="configs/paper.yaml", help="Configuration file path"
    )
    parser.add_argument(
        "--profile",
        default="paper",
        choices=["dev", "paper", "prod"],
        help="Configuration profile",
    )

    args = parser.parse_args()

    try:
        settings = load_settings(args.profile, args.config)
        logger.info("Settings loaded", profile=args.profile, config=args.config)

        pipeline = TradingPipeline(settings)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, pipeline.request_stop)

        await pipeline.run_forever()

    except Exception as e:
        logger.error("Fatal error", error=str(e))
        sys.exit(1)


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
