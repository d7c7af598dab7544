import os
import json
import zipfile
import threading
import urllib.request

import vosk
import pyaudio

from .config import SAMPLE_RATE, CHUNK_SAMPLES, VOSK_MODEL_NAME, VOSK_MODEL_URL, NUMBER_WORDS
from .events import SpeechEvent
from .logui import debug, info, warn, error


DIGIT_TO_WORD = {v: k for k, v in NUMBER_WORDS.items()}


def spoken_form(phrase: str) -> str:
    # the model vocabulary has no digits or hyphens
    words = []
    for tok in phrase.replace("-", " ").split():
        words.append(DIGIT_TO_WORD.get(tok, tok))
    return " ".join(words)


def grammar_for(phrases: list[str]) -> list[str]:
    out = sorted({spoken_form(p) for p in phrases if p})
    out.append("[unk]")
    return out


def mean_word_confidence(result: dict) -> float:
    words = result.get("result") or []
    confs = [float(w.get("conf", 1.0)) for w in words if isinstance(w, dict)]
    if not confs:
        return 1.0
    return sum(confs) / len(confs)


def final_event_from_result(raw: str) -> SpeechEvent | None:
    try:
        r = json.loads(raw or "{}")
    except json.JSONDecodeError:
        warn(f"Bad recognizer result: {raw!r}")
        return None

    text = " ".join((r.get("text") or "").replace("[unk]", " ").split())
    if not text:
        return None
    return SpeechEvent.final(text, mean_word_confidence(r))


def partial_text(raw: str) -> str:
    try:
        r = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return ""
    return " ".join((r.get("partial") or "").replace("[unk]", " ").split())


class VoskSpeechEngine:
    def __init__(
        self,
        base_dir: str,
        phrases: list[str] | None = None,
        model_name: str = VOSK_MODEL_NAME,
        model_url: str = VOSK_MODEL_URL,
        use_grammar: bool = True,
        device_index: int | None = None,
        on_event=None,
    ):
        self.base_dir = os.path.abspath(base_dir)
        self.model_path = os.path.join(self.base_dir, model_name)
        self.model_url = model_url
        self.use_grammar = use_grammar
        self.device_index = device_index
        self.phrases = list(phrases or [])
        self.on_event = on_event

        self.model = None
        self.audio = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()

    def _emit(self, event: SpeechEvent):
        if self.on_event is not None:
            self.on_event(event)

    def set_phrases(self, phrases: list[str]):
        self.phrases = list(phrases or [])
        debug(f"Grammar phrases: {len(self.phrases)} (applies on next start)")

    # ------------------- Model / device -------------------
    def ensure_model(self) -> bool:
        if self.model is not None:
            return True

        model_file = os.path.join(self.model_path, "am", "final.mdl")
        if not os.path.exists(model_file):
            info("Vosk model missing -> downloading...")
            zip_path = os.path.join(self.base_dir, "vosk_model.zip")
            try:
                urllib.request.urlretrieve(self.model_url, zip_path)
                with zipfile.ZipFile(zip_path, "r") as z:
                    z.extractall(self.base_dir)
                os.remove(zip_path)
                info("Vosk model downloaded")
            except (OSError, zipfile.BadZipFile) as e:
                warn(f"Failed to download Vosk model: {e}")
                return False

        try:
            self.model = vosk.Model(self.model_path)
        except Exception as e:
            warn(f"Failed to load Vosk model: {e}")
            self.model = None
            return False
        return True

    def _has_input_device(self) -> bool:
        if self.audio is None:
            self.audio = pyaudio.PyAudio()
        try:
            if self.device_index is not None:
                dev = self.audio.get_device_info_by_index(self.device_index)
            else:
                dev = self.audio.get_default_input_device_info()
        except (IOError, OSError) as e:
            warn(f"No input device: {e}")
            return False
        return int(dev.get("maxInputChannels", 0)) > 0

    def is_supported(self) -> bool:
        return self.ensure_model() and self._has_input_device()

    # ------------------- Lifecycle -------------------
    def start(self):
        if self._thread is not None and self._thread.is_alive():
            debug("Engine already running")
            return
        if self.model is None and not self.ensure_model():
            raise RuntimeError("Vosk model not loaded")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="vosk-engine", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()

    def close(self):
        self.stop()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        if self.audio is not None:
            self.audio.terminate()
            self.audio = None

    def _new_recognizer(self):
        if self.use_grammar and self.phrases:
            rec = vosk.KaldiRecognizer(self.model, SAMPLE_RATE, json.dumps(grammar_for(self.phrases)))
        else:
            rec = vosk.KaldiRecognizer(self.model, SAMPLE_RATE)
        rec.SetWords(True)
        return rec

    def _open_stream(self):
        if self.audio is None:
            self.audio = pyaudio.PyAudio()
        stream = self.audio.open(
            format=pyaudio.paInt16,
            channels=1,
            rate=SAMPLE_RATE,
            input=True,
            input_device_index=self.device_index,
            frames_per_buffer=CHUNK_SAMPLES,
        )
        stream.start_stream()
        return stream

    def _run(self):
        try:
            stream = self._open_stream()
        except (IOError, OSError) as e:
            error(f"Failed to open audio stream: {e}")
            self._emit(SpeechEvent.failure("audio-capture"))
            self._emit(SpeechEvent.end())
            return

        rec = self._new_recognizer()
        debug("Audio stream started")
        self._emit(SpeechEvent.start())

        last_partial = ""
        try:
            while not self._stop.is_set():
                data = stream.read(CHUNK_SAMPLES, exception_on_overflow=False)
                if rec.AcceptWaveform(data):
                    event = final_event_from_result(rec.Result())
                    last_partial = ""
                    if event is not None:
                        self._emit(event)
                    continue
                partial = partial_text(rec.PartialResult())
                if partial and partial != last_partial:
                    last_partial = partial
                    self._emit(SpeechEvent.interim(partial))
        except (IOError, OSError) as e:
            warn(f"Audio read failed: {e}")
            self._emit(SpeechEvent.failure("aborted"))
        finally:
            try:
                stream.stop_stream()
                stream.close()
            except (IOError, OSError) as e:
                debug(f"Stream close: {e}")
            debug("Audio stream stopped")
            self._emit(SpeechEvent.end())
