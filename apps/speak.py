#!/usr/bin/env python3
"""
speak.py: one-shot prompt tool for the speech cache.

Examples:
  # speak one sentence through the configured backend and sink
  ./apps/speak.py --config kiosk.yaml --text "計測成功！"

  # synthesize every configured prompt into the cache, play nothing
  AZURE_SPEECH_KEY=... ./apps/speak.py --backend azure --warm-all

  # show where a prompt would be cached
  ./apps/speak.py --text "完了しました。" --path-only
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace

from kiosk_stack.l0_core.errors import SpeechError
from kiosk_stack.l3_domain.config import KioskConfig, load_config
from kiosk_stack.l3_domain.kiosk import build_voice
from kiosk_stack.l3_domain.screen.prompts import PromptTable
from kiosk_stack.l3_domain.tts.speakers import CachedSpeaker


def warm(speaker: CachedSpeaker, cache, texts: list[str]) -> int:
    """Resolve every text into the cache. Returns the number of failures."""
    failures = 0
    for text in texts:
        try:
            handle = cache.resolve(text, speaker.voice_profile, speaker.audio_format)
        except SpeechError as e:
            failures += 1
            print(f"[skip] {text} ({type(e).__name__}: {e})")
            continue
        print(f"[ok] {handle.path.name}  {text}")
    return failures


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Speak or pre-cache kiosk prompts")
    ap.add_argument("--config", help="YAML or JSON config file")
    ap.add_argument("--backend", choices=("local", "azure"), help="Speech backend")
    ap.add_argument("--sink", choices=("sounddevice", "command", "print"), help="Audio output")
    ap.add_argument("--log-level", default="WARNING")

    # one of these:
    ap.add_argument("--text", help="Sentence to speak")
    ap.add_argument("--warm-all", action="store_true", help="Cache every configured prompt")

    ap.add_argument("--path-only", action="store_true", help="Print the cache path of --text and exit")
    args = ap.parse_args(argv)

    if args.text and args.warm_all:
        ap.error("Use either --text or --warm-all (not both).")
    if not args.text and not args.warm_all:
        ap.error("Provide one of --text or --warm-all.")

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))
    cfg = load_config(args.config) if args.config else KioskConfig()
    voice_cfg = cfg.voice
    if voice_cfg.backend == "none" and not args.backend:
        voice_cfg = replace(voice_cfg, backend="local")
    if args.backend:
        voice_cfg = replace(voice_cfg, backend=args.backend)
    if args.sink:
        voice_cfg = replace(voice_cfg, sink=args.sink)
    cfg = cfg.with_overrides(voice=voice_cfg)

    voice = build_voice(cfg)
    speaker = voice.speaker
    cache = voice.cache
    if not isinstance(speaker, CachedSpeaker) or cache is None:
        ap.error("speech cache disabled (voice.backend=none)")

    try:
        if args.warm_all:
            texts = PromptTable().with_overrides(cfg.prompts).all_texts()
            failures = warm(speaker, cache, texts)
            print(f"[done] {len(texts) - failures}/{len(texts)} cached in {cache.root}")
            return 1 if failures else 0

        if args.path_only:
            print(cache.path_for(args.text, speaker.voice_profile, speaker.audio_format))
            return 0

        fut = speaker.speak(args.text, 0.0)
        if fut is None or not fut.result():
            print("[fail] nothing played (see log)")
            return 1
        return 0
    finally:
        if voice.coordinator is not None:
            voice.coordinator.shutdown(wait=True)


if __name__ == "__main__":
    sys.exit(main())
