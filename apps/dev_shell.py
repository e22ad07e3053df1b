#!/usr/bin/env python3
"""
Developer Shell for the Kiosk Stack
-----------------------------------
Minimal REPL that mirrors the production wiring (EventBus, EventQueue,
dispatcher, speech cache, playback) and lets you inject codes by hand,
force screens, and poke the speech cache.
"""
from __future__ import annotations

import argparse
import logging
import shlex
import signal
import sys
import threading
from dataclasses import dataclass, replace

from kiosk_stack.l0_core import EventBus
from kiosk_stack.l0_core.errors import SerialError, SpeechError
from kiosk_stack.l0_core.events import DisplayState, SpeakDefault, SpeakNow, Suppress
from kiosk_stack.l1_drivers.pyserial_port import discover_ports
from kiosk_stack.l3_domain.config import KioskConfig, load_config
from kiosk_stack.l3_domain.kiosk import Kiosk
from kiosk_stack.l3_domain.tts.speakers import CachedSpeaker


@dataclass(slots=True)
class ShellContext:
    eventbus: EventBus
    kiosk: Kiosk
    stop: threading.Event
    loop_thread: threading.Thread


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kiosk Dev Shell")
    parser.add_argument("--config", help="YAML or JSON config file")
    parser.add_argument("--backend", choices=("local", "azure", "none"), default=None)
    parser.add_argument("--sink", choices=("sounddevice", "command", "print"), default="print")
    parser.add_argument("--connect", action="store_true", help="Open the reader device too")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO),
                        format="%(levelname)s %(name)s: %(message)s")
    cfg = load_config(args.config) if args.config else KioskConfig()
    voice = replace(cfg.voice, sink=args.sink)
    if args.backend:
        voice = replace(voice, backend=args.backend)
    cfg = cfg.with_overrides(voice=voice, serial=replace(cfg.serial, auto_connect=args.connect))

    eventbus = EventBus()
    eventbus.subscribe("display.state", lambda evt: print(f"[SCREEN] {evt.state.value} (code={evt.code})"))
    eventbus.subscribe("kiosk.fault", lambda evt: print(f"[FAULT] {evt.code}: {evt.message}"))
    kiosk = Kiosk.from_config(cfg, eventbus)
    kiosk.connect()

    stop = threading.Event()
    loop_thread = threading.Thread(target=kiosk.run, args=(stop,), name="dispatch-loop", daemon=True)
    loop_thread.start()
    ctx = ShellContext(eventbus=eventbus, kiosk=kiosk, stop=stop, loop_thread=loop_thread)

    def _cleanup(*_: object) -> None:
        shutdown(ctx)
        sys.exit(0)

    signal.signal(signal.SIGINT, _cleanup)
    signal.signal(signal.SIGTERM, _cleanup)

    print("Kiosk Dev Shell ready. Type 'help' or 'quit'.")
    run_repl(ctx)
    shutdown(ctx)
    return 0


def run_repl(ctx: ShellContext) -> None:
    while True:
        try:
            raw = input("kiosk> ")
        except (EOFError, KeyboardInterrupt):
            break
        raw = raw.strip()
        if not raw:
            continue
        try:
            tokens = shlex.split(raw)
        except ValueError as exc:
            print(f"[error] {exc}")
            continue
        if not tokens:
            continue
        if not handle_command(tokens, ctx):
            break


def handle_command(tokens: list[str], ctx: ShellContext) -> bool:
    cmd = tokens[0].lower()
    args = tokens[1:]
    if cmd in ("quit", "exit"):
        return False
    if cmd in ("help", "?"):
        print(
            "Commands: help, key <0-9|f1-f6|n>..., show <state> [silent|default|\"text\"], "
            "say <text>, state, queues, cache [text], ports, reopen, quit"
        )
        return True
    if cmd in ("key", "code"):
        send_keys(ctx, args)
        return True
    if cmd == "show":
        force_show(ctx, args)
        return True
    if cmd == "say":
        say(ctx, args)
        return True
    if cmd == "state":
        show_state(ctx)
        return True
    if cmd == "queues":
        show_queues(ctx)
        return True
    if cmd == "cache":
        show_cache(ctx, args)
        return True
    if cmd == "ports":
        print(", ".join(discover_ports()) or "(no serial ports)")
        return True
    if cmd == "reopen":
        reopen(ctx)
        return True
    # bare code/key name is accepted as a shortcut
    if ctx.kiosk.injector.code_for(cmd) is not None:
        send_keys(ctx, tokens)
        return True
    print(f"Unknown command: {' '.join(tokens)}")
    return True


def send_keys(ctx: ShellContext, args: list[str]) -> None:
    if not args:
        print("usage: key <0-9|f1-f6|number> ...")
        return
    for key in args:
        if ctx.kiosk.injector.inject(key):
            print(f"[ok] queued {key!r} -> code {ctx.kiosk.injector.code_for(key)}")
        else:
            print(f"[warn] {key!r} not queued")


def force_show(ctx: ShellContext, args: list[str]) -> None:
    if not args:
        print("usage: show <" + "|".join(s.value for s in DisplayState) + "> [silent|default|\"text\"]")
        return
    try:
        state = DisplayState(args[0].lower())
    except ValueError:
        print(f"[error] unknown state {args[0]!r}")
        return
    mode = args[1] if len(args) > 1 else "default"
    if mode == "silent":
        directive = Suppress()
    elif mode == "default":
        directive = SpeakDefault()
    else:
        directive = SpeakNow(" ".join(args[1:]))
    if not ctx.kiosk.loop.post(lambda: ctx.kiosk.display.show(state, directive)):
        print("[warn] queue full, screen not forced")


def say(ctx: ShellContext, args: list[str]) -> None:
    if not args:
        print("usage: say <text>")
        return
    text = " ".join(args)
    if not ctx.kiosk.loop.post(lambda: ctx.kiosk.display.announce_now(text)):
        print("[warn] queue full, nothing announced")


def show_state(ctx: ShellContext) -> None:
    display = ctx.kiosk.display
    panels = " ".join(f"{'*' if on else ' '}{s.value}" for s, on in display.panels().items())
    print(f"active={display.active.value} processed={ctx.kiosk.loop.processed}")
    print(f"panels: {panels}")
    print(f"serial: {'open ' + str(ctx.kiosk.reader.address) if ctx.kiosk.reader.is_open() else 'closed'}")


def show_queues(ctx: ShellContext) -> None:
    bus = ctx.eventbus
    queue = ctx.kiosk.queue
    print(f"EventBus: {bus.pending()}/{bus.capacity()} dropped={bus.dropped()}")
    print(f"{queue.name()}: {queue.qsize()}/{queue.maxsize()} dropped={queue.dropped()}")
    coordinator = ctx.kiosk.voice.coordinator
    if coordinator is not None:
        print(f"announce tasks in flight: {coordinator.in_flight()}")


def show_cache(ctx: ShellContext, args: list[str]) -> None:
    cache = ctx.kiosk.voice.cache
    speaker = ctx.kiosk.voice.speaker
    if cache is None or not isinstance(speaker, CachedSpeaker):
        print("speech cache disabled (backend=none)")
        return
    if not args:
        print(f"root={cache.root} {cache.stats()}")
        return
    text = " ".join(args)
    path = cache.path_for(text, speaker.voice_profile, speaker.audio_format)
    print(f"{path} {'(cached)' if path.is_file() else '(missing)'}")
    try:
        handle = cache.resolve(text, speaker.voice_profile, speaker.audio_format)
    except SpeechError as exc:
        print(f"[warn] {type(exc).__name__}: {exc}")
        return
    if handle.wav is not None:
        print(f"[ok] {handle.wav.duration_sec:.2f}s {handle.wav.sample_rate} Hz")
    else:
        print(f"[ok] {handle.path.name}")


def reopen(ctx: ShellContext) -> None:
    try:
        address = ctx.kiosk.reader.reopen()
    except SerialError as exc:
        print(f"[error] {exc}")
        return
    print(f"[ok] reopened {address}")


def shutdown(ctx: ShellContext) -> None:
    ctx.stop.set()
    ctx.loop_thread.join(timeout=1.0)
    try:
        ctx.kiosk.close()
    finally:
        ctx.eventbus.close()


if __name__ == "__main__":
    raise SystemExit(main())
