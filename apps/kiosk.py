#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from dataclasses import replace
from typing import Callable

from kiosk_stack.l0_core import EventBus
from kiosk_stack.l0_core.events import Fault, StateChanged
from kiosk_stack.l3_domain.config import KioskConfig, load_config
from kiosk_stack.l3_domain.kiosk import Kiosk


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kiosk control core")
    parser.add_argument("--config", help="YAML or JSON config file")
    parser.add_argument("--port", help="Serial device (default: first discovered)")
    parser.add_argument("--baud", type=int, help="Baud rate")
    parser.add_argument("--backend", choices=("local", "azure", "none"), help="Speech backend")
    parser.add_argument("--sink", choices=("sounddevice", "command", "print"), help="Audio output")
    parser.add_argument("--no-keyboard", action="store_true", help="Disable stdin code injection")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def apply_cli(cfg: KioskConfig, args: argparse.Namespace) -> KioskConfig:
    serial = cfg.serial
    if args.port:
        serial = replace(serial, port=args.port)
    if args.baud:
        serial = replace(serial, baudrate=args.baud)
    voice = cfg.voice
    if args.backend:
        voice = replace(voice, backend=args.backend)
    if args.sink:
        voice = replace(voice, sink=args.sink)
    simulate = cfg.simulate_with_keyboard and not args.no_keyboard
    return cfg.with_overrides(serial=serial, voice=voice, simulate_with_keyboard=simulate)


def _print_topic(topic: str) -> Callable[[object], None]:
    def _cb(evt: object) -> None:
        if isinstance(evt, StateChanged):
            print(f"[SCREEN] {evt.state.value} (code={evt.code})")
        elif isinstance(evt, Fault):
            print(f"[FAULT] {evt.code}: {evt.message} {dict(evt.context)}")
        else:
            print(f"[EVENT {topic}] {evt}")
    return _cb


def _keyboard_loop(kiosk: Kiosk, stop: threading.Event) -> None:
    """Read key names from stdin: 0-9, f1-f6 (= 10-15) or a number."""
    while not stop.is_set():
        try:
            line = input()
        except EOFError:
            return
        for token in line.split():
            kiosk.injector.inject(token)


def main(argv: list[str] | None = None) -> int:
    """
    Kiosk runner.

    What this process does
    ----------------------
    1) Loads config (file + CLI overrides) and builds the kiosk: event queue,
       dispatcher, display state machine, speech cache and playback.
    2) Opens the reader device (configured port or first discovered). If none
       is available the kiosk keeps running on simulated input.
    3) Optionally reads key names from stdin and injects them as codes.
    4) Runs the dispatch loop on the main thread until SIGINT/SIGTERM.

    Threading model
    ---------------
    - Serial reader thread: readline -> parse -> EventQueue.
    - Main thread: tick loop draining the queue and dispatching in order.
    - Announce pool threads: cache resolution, delay, playback.
    - EventBus dispatcher thread: screen/fault notifications below.
    """
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = load_config(args.config) if args.config else KioskConfig()
    cfg = apply_cli(cfg, args)

    bus = EventBus(capacity=1024, publish_timeout_ms=10)
    bus.subscribe("display.state", _print_topic("display.state"))
    bus.subscribe("kiosk.fault", _print_topic("kiosk.fault"))

    kiosk = Kiosk.from_config(cfg, bus)
    live = kiosk.connect()
    if not live and not cfg.simulate_with_keyboard:
        print("[kiosk] no reader device and keyboard input disabled; nothing will happen")

    stop = threading.Event()
    if cfg.simulate_with_keyboard:
        threading.Thread(target=_keyboard_loop, args=(kiosk, stop), name="keyboard", daemon=True).start()
        print("[kiosk] type codes: 0-9, f1-f6 (=10-15), Enter to send; Ctrl+C to exit")

    def _on_signal(sig, frame):
        print("\n[kiosk] shutting down...")
        stop.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        kiosk.run(stop)
    finally:
        kiosk.close()
        bus.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
