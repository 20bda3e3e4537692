"""modhost — Module lifecycle host.

modhost discovers directory-packaged modules, resolves their declared
dependencies, runs their initialize/cleanup hooks in a safe order, and
publishes each module's capability object to the modules that depend on it.

Layers (bottom to top):
    1. Manifest  — ``manifest.json`` reader and pydantic validation
    2. Registry  — capability registry (``module_id → api``)
    3. Config    — persisted JSON Configuration Store, a system module
    4. Runtime   — ModuleLoader: discovery, resolution, lifecycle, teardown
    5. Host/CLI  — process wiring, signal-driven shutdown, typer commands
"""

__version__ = "0.1.0"
__author__ = "modhost Contributors"
__license__ = "Apache-2.0"

from modhost.modules.loader import ModuleLoader

__all__ = [
    "__version__",
    "ModuleLoader",
]
