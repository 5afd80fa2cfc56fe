"""
FairGuard moderation engine
===========================

Assembles the moderation engine (store, warning ledger, word lists,
classifier gateway, pipeline, arbitration, history queries, rate limiter
and maintenance scheduler) and provides the ``fairguard`` console entry point,
which runs a single maintenance sweep over the configured store and exits.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import Optional

import discord
from dotenv import load_dotenv

from fairguard.ai.classifier_gateway import ClassifierGateway
from fairguard.ai.providers import create_backend
from fairguard.configuration.app_configuration import AppConfig
from fairguard.database.db_connection import ConnectionManager
from fairguard.database.db_schema import SchemaManager
from fairguard.moderation.ai_confirmation import AIConfirmationService
from fairguard.moderation.appeals import AppealAdjudicator
from fairguard.moderation.context import PlatformContextFetcher
from fairguard.moderation.manual_moderation import ManualModeration
from fairguard.moderation.moderation_history import ModerationHistory
from fairguard.moderation.moderation_pipeline import ModerationPipeline
from fairguard.moderation.punishment import PunishmentExecutor
from fairguard.moderation.rate_limiter import RateLimiter
from fairguard.moderation.trust_score import TrustScoreService
from fairguard.moderation.warning_ledger import WarningLedger
from fairguard.moderation.word_lists import WordLists
from fairguard.platform.chat_platform import ChatPlatform
from fairguard.platform.discord_platform import DiscordPlatform
from fairguard.scheduler.maintenance_scheduler import MaintenanceScheduler
from fairguard.util.logger import get_logger, handle_exception, register_secret
from fairguard.util.time_utils import Clock, now_ms

logger = get_logger("main")


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. FAIRGUARD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("FAIRGUARD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


class ModerationEngine:
    """Every engine component, wired once and shared by the platform glue."""

    def __init__(
        self,
        config: AppConfig,
        db: ConnectionManager,
        platform: ChatPlatform,
        ledger: WarningLedger,
        word_lists: WordLists,
        gateway: ClassifierGateway,
        punisher: PunishmentExecutor,
        confirmations: AIConfirmationService,
        trust: TrustScoreService,
        pipeline: ModerationPipeline,
        manual: ManualModeration,
        appeals: AppealAdjudicator,
        history: ModerationHistory,
        rate_limiter: RateLimiter,
        scheduler: MaintenanceScheduler,
    ) -> None:
        self.config = config
        self.db = db
        self.platform = platform
        self.ledger = ledger
        self.word_lists = word_lists
        self.gateway = gateway
        self.punisher = punisher
        self.confirmations = confirmations
        self.trust = trust
        self.pipeline = pipeline
        self.manual = manual
        self.appeals = appeals
        self.history = history
        self.rate_limiter = rate_limiter
        self.scheduler = scheduler

    async def start(self, database_path: Optional[str] = None, *, run_scheduler: bool = True) -> None:
        """Open and migrate the store, load the word lists and start periodic maintenance."""
        await self.db.open(database_path or self.config.database_path)
        await SchemaManager.initialize_schema(self.db.connection)
        await self.word_lists.reload()
        if run_scheduler:
            self.scheduler.start()
        logger.info("[ENGINE] Moderation engine started")

    async def shutdown(self) -> None:
        """Stop maintenance, wait for background work and close the store."""
        try:
            await self.scheduler.shutdown()
        except Exception as exc:
            logger.exception("[ENGINE] Error during scheduler shutdown: %s", exc)

        await self.pipeline.drain_background_tasks()
        self.manual.pending.clear()
        await self.manual.pending.drain_callbacks()
        await self.db.close()
        logger.info("[ENGINE] Shutdown complete.")


def build_engine(
    config: AppConfig,
    platform: ChatPlatform,
    *,
    clock: Clock = now_ms,
    gateway: Optional[ClassifierGateway] = None,
) -> ModerationEngine:
    """Construct every component with its collaborators injected.

    Args:
        config: Loaded application configuration.
        platform: Chat platform the engine deletes messages and reads history through.
        clock: Millisecond clock shared by every component.
        gateway: Pre-built classifier gateway; built from ``config.ai_settings`` when omitted.
    """
    db = ConnectionManager()
    if gateway is None:
        gateway = ClassifierGateway.from_settings(create_backend(config.ai_settings), config.ai_settings)

    ledger = WarningLedger(db, clock, config.warning_expiry_days)
    word_lists = WordLists(db, clock)
    punisher = PunishmentExecutor(ledger, platform, config.warn_threshold, clock)
    confirmations = AIConfirmationService(db, punisher, clock, config.confirmation_ttl_seconds)
    trust = TrustScoreService(db, ledger, clock, config.low_trust_threshold)
    pipeline = ModerationPipeline(
        db,
        config,
        word_lists,
        gateway,
        punisher,
        confirmations,
        trust,
        platform,
        default_context_fetcher=PlatformContextFetcher(platform),
        clock=clock,
    )
    manual = ManualModeration(db, config, ledger, gateway, platform, clock)
    appeals = AppealAdjudicator(db, config, ledger, gateway, clock)
    history = ModerationHistory(db, clock)
    rate_limiter = RateLimiter(db, config.rate_limit_max_commands, config.rate_limit_window_seconds, clock)

    async def cleanup_pending_warns() -> int:
        return manual.cleanup_expired_pending()

    scheduler = MaintenanceScheduler(
        [
            ("warning_expiry", ledger.cleanup_expired),
            ("pending_warns", cleanup_pending_warns),
            ("stale_confirmations", confirmations.sweep_stale),
            ("message_tracking", pipeline.prune_message_tracking),
            ("rate_limits", rate_limiter.prune),
        ],
        lambda: config.maintenance_interval_seconds,
    )

    return ModerationEngine(
        config=config,
        db=db,
        platform=platform,
        ledger=ledger,
        word_lists=word_lists,
        gateway=gateway,
        punisher=punisher,
        confirmations=confirmations,
        trust=trust,
        pipeline=pipeline,
        manual=manual,
        appeals=appeals,
        history=history,
        rate_limiter=rate_limiter,
        scheduler=scheduler,
    )


def load_environment(base_dir: Path) -> None:
    """Load ``.env`` and register every secret it provides with the log redactor."""
    load_dotenv(dotenv_path=base_dir / ".env")
    register_secret(os.getenv("DISCORD_BOT_TOKEN"))


def build_intents() -> discord.Intents:
    """Intents needed to read message history and resolve member roles."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


async def async_main(base_dir: Path) -> int:
    """Build the engine, run one maintenance sweep and shut down, returning an exit code."""
    load_environment(base_dir)
    config = AppConfig(base_dir / "config" / "app_config.yml")

    client = discord.Client(intents=build_intents())
    platform = DiscordPlatform(client, config.guild_id, config.admin_user_ids, config.admin_role_ids)
    engine = build_engine(config, platform)

    try:
        await engine.start(run_scheduler=False)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        await engine.shutdown()
        return 1

    exit_code = 0
    try:
        results = await engine.scheduler.run_once()
        failed = [name for name, result in results.items() if isinstance(result, Exception)]
        if failed:
            logger.error("Maintenance jobs failed: %s", ", ".join(failed))
            exit_code = 1
        else:
            logger.info("Maintenance sweep finished: %s", results)
    finally:
        await engine.shutdown()
        await client.close()

    return exit_code


def main() -> int:
    """Entrypoint that runs the async maintenance sweep and returns the process code."""
    sys.excepthook = handle_exception
    base_dir = resolve_base_dir()
    os.chdir(base_dir)
    logger.info("Starting FairGuard maintenance run…")
    try:
        return asyncio.run(async_main(base_dir))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
