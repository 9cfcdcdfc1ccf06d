from __future__ import annotations

import gc
import os
from typing import Any, Dict, List, Optional

import requests

from carewatch.utils.env_utils import env_str, int_env

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_LOCAL_MODEL = "google/gemma-2-2b-it"
MESSAGE_DEVICE_ENV = "MESSAGE_DEVICE"
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
DEFAULT_HF_CACHE_DIR = os.path.join(_REPO_ROOT, "models")


def _hf_token() -> Optional[str]:
    return os.getenv("HF_TOKEN") or os.getenv("HUGGINGFACE_HUB_TOKEN")


class GeminiClient:
    def __init__(self, api_key: str, model: str = DEFAULT_GEMINI_MODEL, timeout: float = 20.0, session=None) -> None:
        if not api_key:
            raise ValueError("Gemini API key is required.")
        self.api_key = api_key
        self.model = model or DEFAULT_GEMINI_MODEL
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(self, prompt: str) -> str:
        url = GEMINI_ENDPOINT.format(model=self.model)
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        resp = self.session.post(
            url,
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise RuntimeError(f"Gemini API returned {resp.status_code}: {resp.text[:200]}")
        data = resp.json()
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(str(p.get("text") or "") for p in parts).strip()


class LocalTextModel:
    """Small instruction-tuned model served in-process through transformers.

    Weights load on first use so the web app starts without a GPU round trip.
    """

    def __init__(self, model_id: str = DEFAULT_LOCAL_MODEL) -> None:
        self.model_id = model_id
        self.max_new_tokens = int_env("MESSAGE_MAX_NEW_TOKENS", 96, 16, 512)
        self.max_input_tokens = int_env("MESSAGE_MAX_INPUT_TOKENS", 1024, 128, 4096)
        self.tokenizer = None
        self.model = None

    def _resolve_device(self) -> str:
        import torch

        mode = env_str(MESSAGE_DEVICE_ENV, "auto").lower()
        if mode == "cpu":
            return "cpu"
        if mode == "cuda":
            if not torch.cuda.is_available():
                raise RuntimeError(f"{MESSAGE_DEVICE_ENV}=cuda but CUDA is not available.")
            return "cuda"
        return "cuda" if torch.cuda.is_available() else "cpu"

    def _load(self) -> None:
        if self.model is not None:
            return
        import torch
        from transformers import AutoModelForCausalLM, AutoTokenizer

        device = self._resolve_device()
        dtype = torch.bfloat16 if device == "cuda" else torch.float32
        token = _hf_token()
        self.tokenizer = AutoTokenizer.from_pretrained(
            self.model_id, token=token, cache_dir=DEFAULT_HF_CACHE_DIR
        )
        self.model = AutoModelForCausalLM.from_pretrained(
            self.model_id,
            token=token,
            torch_dtype=dtype,
            cache_dir=DEFAULT_HF_CACHE_DIR,
        ).to(device)
        self.model.eval()
        print(f"[Composer] Local model {self.model_id} loaded on {device}")

    def _messages(self, prompt: str) -> List[Dict[str, Any]]:
        # Gemma-style chat templates reject a separate system turn; the prompt already opens with it.
        return [{"role": "user", "content": prompt}]

    def generate(self, prompt: str) -> str:
        import torch

        self._load()
        inputs = self.tokenizer.apply_chat_template(
            self._messages(prompt),
            add_generation_prompt=True,
            return_tensors="pt",
            return_dict=True,
            truncation=True,
            max_length=self.max_input_tokens,
        ).to(self.model.device)
        try:
            with torch.inference_mode():
                output = self.model.generate(**inputs, max_new_tokens=self.max_new_tokens, do_sample=False)
        except RuntimeError:
            if self.model.device.type == "cuda":
                gc.collect()
                torch.cuda.empty_cache()
            raise
        prompt_len = inputs["input_ids"].shape[-1]
        return self.tokenizer.decode(output[0][prompt_len:], skip_special_tokens=True).strip()


def build_generator(backend: str = "", *, gemini_api_key: str = "", gemini_model: str = "", local_model: str = ""):
    """Pick the text-generation backend; ``None`` means templated messages only."""
    backend = (backend or "auto").strip().lower()
    if backend == "none":
        return None
    if backend == "local":
        return LocalTextModel(local_model or DEFAULT_LOCAL_MODEL)
    if backend == "gemini" or (backend == "auto" and gemini_api_key):
        if not gemini_api_key:
            print("[Composer] MESSAGE_BACKEND=gemini but GEMINI_API_KEY is missing; using template messages.")
            return None
        return GeminiClient(gemini_api_key, gemini_model or DEFAULT_GEMINI_MODEL)
    if backend != "auto":
        print(f"[Composer] Unknown MESSAGE_BACKEND={backend!r}; using template messages.")
    return None
