import typer
import concurrent.futures
from pathlib import Path
from typing import Optional

from ytmp3.config.access import AccessRegistry
from ytmp3.config.loader import load_config
from ytmp3.config.models import AppConfig
from ytmp3.domain.models import ConvertRequest, DispatchResult
from ytmp3.infrastructure.ffmpeg import FFmpegAdapter
from ytmp3.infrastructure.logging import setup_logging
from ytmp3.infrastructure.youtube import YouTubeAdapter
from ytmp3.pipeline.admission import AdmissionController
from ytmp3.pipeline.dispatcher import RequestDispatcher, help_text
from ytmp3.ui.console import ConsoleChannel

app = typer.Typer(help="ytmp3 - YouTube to size-bounded MP3 converter")

DEFAULT_CONFIG_PATH = Path("conf/ytmp3.yaml")
LOCAL_REQUESTER_ID = "local"


def _load_config_or_default(config_path: Path) -> AppConfig:
    if config_path.exists():
        return load_config(config_path)
    if config_path != DEFAULT_CONFIG_PATH:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    return AppConfig()


@app.command()
def convert(
    url: str = typer.Argument(..., help="YouTube video link"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", help="Override audio bitrate (kbps)"),
    output_dir: Path = typer.Option(Path("."), "--output", "-o", help="Where the finished MP3 is written"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert one YouTube video to MP3. Ctrl+C cancels the running conversion."""
    try:
        config = _load_config_or_default(config_path)
        # Apply CLI overrides
        if bitrate is not None:
            if bitrate <= 0:
                typer.secho("Error: --bitrate must be positive", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1)
            config.general.bitrate = bitrate
        if log_path is not None: config.general.log_path = str(log_path)
        if debug: config.general.debug = True

        logger = setup_logging(Path(config.general.log_path), debug=config.general.debug)
        logger.info(
            f"Config: bitrate={config.general.bitrate}, max_queue_size={config.general.max_queue_size}, "
            f"download_path={config.general.download_path}, debug={config.general.debug}"
        )

        youtube = YouTubeAdapter()
        admission = AdmissionController(config.general.max_queue_size)
        dispatcher = RequestDispatcher(
            config=config,
            admission=admission,
            access=AccessRegistry(config),
            lookup=youtube,
            source=youtube,
            transcoder=FFmpegAdapter(config.general.ffmpeg_binary, debug=config.general.debug),
            channel=ConsoleChannel(output_dir),
        )
        # The terminal user acts as the owner
        request = ConvertRequest(
            requester_id=LOCAL_REQUESTER_ID,
            user_id=config.access.owner_user_id,
            text=url,
        )

        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(dispatcher.handle_convert, request)
            while True:
                try:
                    result = future.result(timeout=0.2)
                    break
                except concurrent.futures.TimeoutError:
                    continue
                except KeyboardInterrupt:
                    typer.secho("\nCanceling...", fg=typer.colors.YELLOW)
                    dispatcher.handle_cancel(LOCAL_REQUESTER_ID)
        admission.close()

        if result == DispatchResult.INVALID_URL:
            typer.secho(f"Error: not a YouTube video link: {url}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        if result == DispatchResult.CANCELED:
            raise typer.Exit(code=130)
        if result != DispatchResult.DELIVERED:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise

    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def allow(
    user_id: int = typer.Argument(..., help="User id to add to the whitelist"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
):
    """Add a user to the whitelist and save the config."""
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    access = AccessRegistry(config, config_path)
    if access.allow(user_id):
        typer.secho(f"Added {user_id}", fg=typer.colors.GREEN)
    else:
        typer.echo(f"{user_id} is already allowed")


@app.command()
def limits(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to YAML config"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", help="Bitrate to compute the limit for (kbps)"),
):
    """Show the bitrate and the longest video that fits the size limit."""
    try:
        config = _load_config_or_default(config_path)
    except FileNotFoundError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    effective = bitrate if bitrate is not None else config.general.bitrate
    if effective <= 0:
        typer.secho("Error: --bitrate must be positive", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(help_text(effective))


if __name__ == "__main__":
    app()
