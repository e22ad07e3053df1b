"""
Azure Speech backend
====================
Synthesis backend that posts SSML to the Azure Cognitive Services
text-to-speech REST endpoint and returns the encoded audio bytes.

A missing subscription key is not an error: the backend simply reports
``is_configured == False`` and the speech cache answers with
SynthesisUnavailable, so prompts are skipped while the screens keep working.
"""
from __future__ import annotations

import logging
import os
from urllib import error, request
from xml.sax.saxutils import escape, quoteattr

from kiosk_stack.l0_core.errors import SynthesisFailed
from kiosk_stack.l2_audio.formats import AudioFormat

log = logging.getLogger(__name__)

DEFAULT_REGION = "japaneast"
DEFAULT_VOICE = "ja-JP-NanamiNeural"
DEFAULT_TIMEOUT_S = 10.0
KEY_ENV_VAR = "AZURE_SPEECH_KEY"
USER_AGENT = "kiosk-stack"


def render_ssml(text: str, voice_profile: str, lang: str = "ja-JP") -> str:
    """
    Wrap ``text`` in the SSML document the endpoint expects.

    Markup characters in the text are escaped; the voice name is emitted as a
    quoted attribute.
    """
    return (
        f'<speak version="1.0" xml:lang="{lang}">'
        f"<voice name={quoteattr(voice_profile)}>"
        f'<prosody rate="+0%" pitch="+0%">{escape(text)}</prosody>'
        "</voice>"
        "</speak>"
    )


class AzureSpeechBackend:
    """
    Purpose:
        Turn prompt text into audio bytes via the Azure TTS REST API.

    Parameters:
        region:           Azure region (e.g. "japaneast", "eastus").
        subscription_key: Speech resource key; empty means "not configured".
                          Falls back to $AZURE_SPEECH_KEY when None.
        timeout_sec:      Socket timeout for the POST.
    """

    def __init__(self, region: str = DEFAULT_REGION, subscription_key: str | None = None,
                 timeout_sec: float = DEFAULT_TIMEOUT_S) -> None:
        if subscription_key is None:
            subscription_key = os.environ.get(KEY_ENV_VAR, "")
        self._region = region
        self._key = subscription_key.strip()
        self._timeout = timeout_sec

    @property
    def endpoint(self) -> str:
        return f"https://{self._region}.tts.speech.microsoft.com/cognitiveservices/v1"

    @property
    def is_configured(self) -> bool:
        return bool(self._key)

    def synthesize(self, text: str, voice_profile: str, audio_format: AudioFormat) -> bytes:
        """
        POST the SSML rendering of ``text`` and return the response body.

        Raises:
            SynthesisFailed: no key, HTTP error status, network/timeout error,
                             or an empty response body.
        """
        if not self.is_configured:
            raise SynthesisFailed("Azure subscription key not set")

        body = render_ssml(text, voice_profile).encode("utf-8")
        req = request.Request(
            self.endpoint,
            data=body,
            method="POST",
            headers={
                "Content-Type": "application/ssml+xml",
                "X-Microsoft-OutputFormat": audio_format.name,
                "Ocp-Apim-Subscription-Key": self._key,
                "User-Agent": USER_AGENT,
            },
        )
        try:
            with request.urlopen(req, timeout=self._timeout) as resp:
                audio = resp.read()
        except error.HTTPError as e:
            detail = (e.read() or b"").decode("utf-8", "replace")
            raise SynthesisFailed(f"Azure TTS HTTP {e.code}: {detail or e.reason}") from e
        except (error.URLError, TimeoutError, OSError) as e:
            raise SynthesisFailed(f"Azure TTS request failed: {e}") from e

        if not audio:
            raise SynthesisFailed("Azure TTS returned an empty body")
        log.debug("Azure TTS: %d bytes for %d chars (%s)", len(audio), len(text), voice_profile)
        return audio
