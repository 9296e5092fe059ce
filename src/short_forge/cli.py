import json
import shutil
import sys
from pathlib import Path
from typing import List, Optional

import click

from . import __version__
from .collaborators import NarrationResult, NarrationSynthesizer, PlanResult, ScenePlanner
from .exceptions import InvalidInputError
from .subtitle_parser import Subtitle

# Lazy load rich to improve startup time
_console = None


def get_console():
    global _console
    if _console is None:
        from rich.console import Console
        _console = Console()
    return _console


# =============================================================================
# File-backed collaborators
# =============================================================================

class FilePlanner(ScenePlanner):
    """Plans from a JSON file: {"narration": "...", "scenes": [...]}."""

    def __init__(self, plan_path: Path):
        self.plan_path = Path(plan_path)

    def plan(self, subtitles: List[Subtitle], title: str) -> PlanResult:
        data = json.loads(self.plan_path.read_text(encoding="utf-8"))
        return PlanResult(narration=data.get("narration", ""), scenes=data.get("scenes"))


class FileNarration(NarrationSynthesizer):
    """Uses a pre-rendered narration file instead of synthesizing speech."""

    def __init__(self, audio_path: Path):
        self.audio_path = Path(audio_path)

    def synthesize(self, text: str, dest_dir: Path) -> NarrationResult:
        target = Path(dest_dir) / f"narration{self.audio_path.suffix or '.mp3'}"
        shutil.copyfile(self.audio_path, target)
        return NarrationResult(audio_path=target)


# =============================================================================
# Commands
# =============================================================================

@click.group()
@click.version_option(__version__, prog_name="short-forge")
def cli():
    """Short Forge - Turn a video link and a narration script into a vertical short."""
    pass


@cli.command()
@click.argument("url")
def resolve(url: str):
    """Print the video id extracted from URL."""
    from .source_resolver import extract_video_id

    console = get_console()
    try:
        video_id = extract_video_id(url)
    except InvalidInputError as e:
        console.print(f"[bold red]✗[/] {e}")
        sys.exit(2)
    console.print(video_id)


@cli.command()
@click.argument("url")
@click.option("--limit", default=200, show_default=True, help="Maximum caption cues to print")
def context(url: str, limit: int):
    """Print timestamped caption lines for URL, the material a plan file is written from."""
    import tempfile

    from .acquisition import AcquisitionChain
    from .config import get_settings
    from .source_resolver import extract_video_id
    from .subtitle_parser import format_subtitle_context

    console = get_console()
    try:
        video_id = extract_video_id(url)
    except InvalidInputError as e:
        console.print(f"[bold red]✗[/] {e}")
        sys.exit(2)

    chain = AcquisitionChain.from_settings(get_settings())
    with tempfile.TemporaryDirectory(prefix="short_forge_captions_") as tmp:
        subtitles = chain.fetch_captions(video_id, Path(tmp))

    if not subtitles:
        console.print(f"[bold yellow]⚠[/] No captions available for {video_id}")
        sys.exit(1)
    click.echo(format_subtitle_context(subtitles, limit=limit))


@cli.command()
@click.argument("url")
@click.option("--plan", "plan_path", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="JSON file with narration and scenes")
@click.option("--narration-audio", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Pre-rendered narration audio (overrides 'narration_audio' in the plan)")
@click.option("--work-dir", type=click.Path(file_okay=False, path_type=Path), help="Job working directory root")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path), help="Final output directory")
@click.option("--json", "as_json", is_flag=True, help="Print the job result as JSON")
def run(url: str, plan_path: Path, narration_audio: Optional[Path], work_dir: Optional[Path],
        output_dir: Optional[Path], as_json: bool):
    """Run one job for URL with a file-backed plan and narration."""
    from rich.table import Table

    from .config import get_settings
    from .core.shorts_workflow import ShortsWorkflow

    console = get_console()

    if narration_audio is None:
        plan_data = json.loads(plan_path.read_text(encoding="utf-8"))
        audio_ref = plan_data.get("narration_audio")
        if not audio_ref:
            raise click.UsageError("Pass --narration-audio or set 'narration_audio' in the plan file")
        narration_audio = (plan_path.parent / audio_ref).resolve()
        if not narration_audio.exists():
            raise click.UsageError(f"Narration audio not found: {narration_audio}")

    settings = get_settings()
    if work_dir:
        settings.paths.work_dir = work_dir
    if output_dir:
        settings.paths.output_dir = output_dir

    console.print(f"🚀 Starting job for [bold green]{url}[/]")
    workflow = ShortsWorkflow(
        url,
        planner=FilePlanner(plan_path),
        synthesizer=FileNarration(narration_audio),
        settings=settings,
    )
    result = workflow.execute()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        table = Table(title=f"Job {result.job_id}")
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Value", style="magenta")
        table.add_row("state", result.state.value)
        if result.success:
            table.add_row("output", result.output_path or "")
        else:
            table.add_row("failed stage", result.failed_stage.value if result.failed_stage else "")
            table.add_row("error kind", result.error_kind.value if result.error_kind else "")
            table.add_row("error", result.error or "")
        table.add_row("duration", f"{result.duration_seconds:.1f}s")
        console.print(table)

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    cli()
