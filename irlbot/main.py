import asyncio
import logging
import os
import signal
import sys

from .components import irl_cmds
from .core import (
    AuthError,
    ChatBot,
    ConfigError,
    CredentialStore,
    HealthCheckServer,
    IRLBotSettings,
    SessionOrchestrator,
    StreamController,
    TokenLifecycleManager,
    load_settings,
    setup_logging,
)

LOGGER: logging.Logger = logging.getLogger("Bot")


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: SIGINT still arrives as KeyboardInterrupt
            pass


async def runner(settings: IRLBotSettings) -> int:
    """Run the bot until a shutdown signal. Returns the process exit code."""
    store = CredentialStore(settings.tokens_file)
    tokens = TokenLifecycleManager(store, settings.client_id, settings.client_secret)
    controller = StreamController(settings.obs_host, settings.obs_port, settings.obs_password)
    orchestrator = SessionOrchestrator(
        tokens,
        lambda access_token, events: ChatBot(
            token=access_token, channel=settings.channel, events=events
        ),
        controller=controller,
        check_interval=settings.token_check_interval,
        lookahead=settings.token_lookahead,
        shutdown_timeout=settings.shutdown_timeout,
    )
    irl_cmds.setup(orchestrator, controller, settings)

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    health: HealthCheckServer | None = None

    try:
        LOGGER.info("Connecting to OBS WebSocket...")
        if not await controller.connect():
            LOGGER.error("Could not connect to OBS. Check that:")
            LOGGER.error("  1. OBS is running")
            LOGGER.error("  2. The WebSocket server is enabled (Tools > WebSocket Server Settings)")
            LOGGER.error("  3. OBS_PASSWORD matches the WebSocket password")
            return 1

        scenes = await controller.list_scenes()
        LOGGER.info(f"OBS scenes: {', '.join(scenes)}")
        if settings.intro_scene_name not in scenes:
            LOGGER.warning(
                f"Scene '{settings.intro_scene_name}' not found, create it in OBS "
                f"or set INTRO_SCENE_NAME"
            )

        LOGGER.info("Validating token and connecting to chat...")
        try:
            await orchestrator.start()
        except AuthError as e:
            LOGGER.error(f"Authentication failed: {e}")
            LOGGER.error("Run the authorization flow first: python -m irlbot.scripts.oauth")
            return 1

        if settings.health_port:
            health = HealthCheckServer(orchestrator, settings.channel, port=settings.health_port)
            await health.start()

        LOGGER.info("Bot ready! Commands (broadcaster only):")
        LOGGER.info(f"  !{settings.start_command} - start the IRL stream")
        LOGGER.info(f"  !{settings.stop_command} - stop the IRL stream")

        await stop_event.wait()
        LOGGER.info("Shutting down bot...")
        return 0
    finally:
        if health:
            await health.stop()
        await orchestrator.shutdown()
        await tokens.close()


def main() -> None:
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        settings = load_settings()
    except ConfigError as e:
        LOGGER.error(str(e))
        sys.exit(1)

    setup_logging(settings.log_level)

    try:
        exit_code = asyncio.run(runner(settings))
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
