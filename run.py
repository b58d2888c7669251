"""Minimal runner keeping the brewery core alive.

Usage (example):
    python run.py recipes.json world world_nether
Then type commands:
    status
    save
    quit

The main thread owns the live registry and runs the tick loop; commands
are read on a background thread and queued back to the main thread.
"""
from __future__ import annotations
import logging
import sys
import threading

from brewery.bootstrap import configure_logging, shutdown, start, tick
from brewery.errors import StorageInitError
from brewery.recipe_loader import load_recipe_file
from config import TICK_INTERVAL_SECONDS

logger = logging.getLogger("brewery.run")

PROMPT = "> "

COMMAND_HELP = {
    'status': 'Show how many entities and recipes are loaded.',
    'save': 'Save every live entity now.',
    'help': 'Show this list.',
    'quit': 'Save and exit.',
}


def status_lines(context) -> list[str]:
    registry = context.registry
    return [
        f"Recipes: {len(context.catalog)}",
        f"Barrels: {len(registry.barrels)}  Cauldrons: {len(registry.cauldrons)}",
        f"Players: {len(registry.players)}  Wakeups: {len(registry.wakeups)}",
        f"Legacy brews: {len(registry.legacy_brews)}  Legacy import running: {context.legacy_pending}",
    ]


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()
    recipe_file = argv[0] if argv else None
    worlds = argv[1:]

    try:
        context = start(worlds=worlds)
    except StorageInitError as e:
        logger.critical("Cannot start: %s", e)
        return 1
    if recipe_file:
        try:
            load_recipe_file(recipe_file, context.catalog)
        except (FileNotFoundError, ValueError) as e:
            logger.error("Recipes not loaded: %s", e)

    stop_event = threading.Event()

    def _run_cmd(cmd: str):
        if cmd == 'status':
            for line in status_lines(context):
                print(line)
        elif cmd == 'save':
            ok = context.storage.save_all(context.registry, context.gate)
            print("Saved." if ok else "Save failed, see log.")
        elif cmd == 'quit':
            stop_event.set()
        else:
            for name, desc in COMMAND_HELP.items():
                print(f"  {name:<8} {desc}")

    def _bg_reader():
        while not stop_event.is_set():
            try:
                cmd = input(PROMPT).strip().lower()
            except EOFError:
                cmd = 'quit'
            if cmd:
                context.main_queue.submit(lambda c=cmd: _run_cmd(c))
            if cmd == 'quit':
                break

    reader = threading.Thread(target=_bg_reader, name="command-reader", daemon=True)
    reader.start()
    try:
        while not stop_event.is_set():
            tick(context)
            stop_event.wait(TICK_INTERVAL_SECONDS)
    except KeyboardInterrupt:
        pass
    finally:
        shutdown(context)
    return 0


if __name__ == "__main__":
    sys.exit(main())
