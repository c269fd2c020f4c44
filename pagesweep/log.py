# pagesweep/log.py
import os

from rich.console import Console
from rich.traceback import install

console = Console(stderr=True)
install(show_locals=False)

# Enable debug output if PAGESWEEP_VERBOSE is truthy (not "", "0", "false")
_VERB = os.getenv("PAGESWEEP_VERBOSE", "").strip().lower()
VERBOSE = _VERB not in ("", "0", "false", "no")

def debug(msg):
    if VERBOSE:
        console.log(f"[dim]DEBUG[/] {msg}")

def info(msg): console.log(f"[bold cyan]INFO[/] {msg}")
def warn(msg): console.log(f"[bold yellow]WARN[/] {msg}")
def err(msg):  console.log(f"[bold red]ERR[/] {msg}")
