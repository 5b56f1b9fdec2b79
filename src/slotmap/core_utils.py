"""
Core utility functions for slotmap.

This module provides a collection of helper functions for console output,
command execution, user interaction, and logging setup.
"""
import os
import subprocess
import shlex
import logging
from contextlib import contextmanager, redirect_stdout, redirect_stderr
import questionary
from rich.console import Console
from rich.panel import Panel
import sys

console = Console()
# Create a dedicated console for printing errors to stderr
error_console = Console(stderr=True, style="bold red")

logger = logging.getLogger(__name__)

# --- Text and Styling ---

def print_header(text):
    """Prints a styled header to the console."""
    console.print(Panel(f"[bold cyan]{text}[/]", expand=False, border_style="blue"))

def print_info(text):
    """Prints an informational message to the console."""
    console.print(f"[cyan]ℹ️  {text}[/]")

def print_success(text):
    """Prints a success message to the console."""
    console.print(f"[green]✅ {text}[/]")

def print_warning(text):
    """Prints a warning message to the console."""
    console.print(f"[yellow]⚠️  {text}[/]")

def print_error(text):
    """
    Prints raw, unformatted text to stderr so device descriptions and tool
    output containing brackets are never parsed as rich markup.
    """
    print(f"❌ {text}", file=sys.stderr)

def print_plain(text):
    """Prints tool output verbatim, without markup or highlighting."""
    console.print(text, markup=False, highlight=False)


@contextmanager
def redirect_output(stream):
    """
    Send all console output, stdout and stderr to ``stream`` as plain text.

    The module consoles are rebuilt without a color system so a redirected
    report carries no escape sequences. The previous consoles are restored
    on exit.
    """
    global console, error_console
    saved = (console, error_console)
    console = Console(file=stream, color_system=None, highlight=False, soft_wrap=True)
    error_console = Console(file=stream, color_system=None, highlight=False, soft_wrap=True)
    try:
        with redirect_stdout(stream), redirect_stderr(stream):
            yield stream
    finally:
        console, error_console = saved


class UserCancelled(Exception):
    """Exception raised when user cancels an operation via ESC or Ctrl+C."""
    pass


def safe_ask(prompt_result):
    """
    Safely handle questionary .ask() result.

    If user pressed ESC/Ctrl+C (returns None), raises UserCancelled.
    Otherwise returns the result.

    Usage:
        result = safe_ask(questionary.confirm("Continue?").ask())
    """
    if prompt_result is None:
        raise UserCancelled("Operation cancelled by user")
    return prompt_result


def safe_text_ask(prompt, default="", allow_empty=False, validate=None):
    """
    Safely ask for text input with proper cancellation handling.

    Args:
        prompt: The prompt to display
        default: Default value if user enters empty string
        allow_empty: If True, empty input returns empty string; if False, returns default
        validate: Optional callable returning True or an error message

    Returns:
        User input (stripped) or default value

    Raises:
        UserCancelled if user presses ESC/Ctrl+C
    """
    if default:
        prompt = f"{prompt} [default: {default}]"

    def _validate(value):
        stripped = value.strip()
        if not stripped:
            if default or allow_empty:
                return True
            return "A value is required."
        return validate(stripped) if validate else True

    result = questionary.text(prompt, validate=_validate).ask()
    if result is None:
        raise UserCancelled("Operation cancelled by user")

    stripped = result.strip()
    if not stripped and not allow_empty:
        return default
    return stripped

# --- Command Execution ---

def is_root():
    """Returns True when running with an effective uid of 0."""
    return os.geteuid() == 0


def run_command(cmd_list, check=True, timeout=None):
    """
    Runs a command and returns the completed process with text output.

    Raises ToolUnavailable if the executable is missing or the command times
    out, and subprocess.CalledProcessError on a non-zero exit when ``check``
    is set. Callers decide how to surface the failure.
    """
    # Imported here to avoid a circular import with error_handling
    from .error_handling import ToolUnavailable

    # Make a copy to avoid mutating the original list
    cmd_list = [str(part) for part in cmd_list]
    logger.debug("Executing: %s", ' '.join(shlex.quote(s) for s in cmd_list))

    try:
        result = subprocess.run(
            cmd_list,
            capture_output=True,
            text=True,
            check=check,
            timeout=timeout,
            encoding='utf-8',
            errors='replace'
        )
    except FileNotFoundError as e:
        raise ToolUnavailable(
            f"Command not found: '{cmd_list[0]}'",
            suggestions=[f"Install '{cmd_list[0]}' or make sure it is in your PATH"],
            original_exception=e
        ) from e
    except subprocess.TimeoutExpired as e:
        raise ToolUnavailable(
            f"Command timed out after {timeout}s: {cmd_list[0]}",
            original_exception=e
        ) from e

    if result.returncode != 0:
        logger.debug("Command exited with %s: %s", result.returncode, result.stderr.strip())
    return result


# --- Logging ---

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir, level='INFO', debug=False):
    """
    Set up the package logger with a file handler in ``log_dir``.

    With ``debug`` a stderr stream handler is added at DEBUG level. Returns
    the configured logger.
    """
    root_logger = logging.getLogger('slotmap')
    root_logger.setLevel(logging.DEBUG if debug else getattr(logging, str(level).upper(), logging.INFO))

    if not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers):
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(
                os.path.join(log_dir, 'slotmap.log'),
                encoding='utf-8'
            )
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(file_handler)
        except OSError as e:
            print_warning(f"File logging disabled, cannot write to {log_dir}: {e}")

    if debug and not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setLevel(logging.DEBUG)
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(stream_handler)

    return root_logger
