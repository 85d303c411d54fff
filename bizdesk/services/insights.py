"""
Generative insight collaborator.

Chamadas de melhor esforço: qualquer falha (rede, HTTP, resposta vazia) é
registada e devolve um texto de fallback em português.
"""

import json
import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"

NO_INSIGHTS = "Sem insights disponíveis no momento."
INSIGHTS_ERROR = "Ocorreu um erro ao processar os insights de IA."
NO_DESCRIPTION = "Sem descrição gerada."
DESCRIPTION_ERROR = "Erro ao gerar descrição."

CONSULTANT_INSTRUCTION = (
    "Você é um consultor sênior de gestão. Seja direto, profissional e focado em resultados."
)


class InsightClient:
    def __init__(self, api_key: Optional[str], model: str = "gemini-2.0-flash", timeout: int = 20) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _generate(self, prompt: str, *, temperature: float, system: Optional[str] = None) -> Optional[str]:
        payload: dict = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": temperature},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        resp = self.session.post(
            f"{API_BASE}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        data = resp.json()
        parts = (data.get("candidates") or [{}])[0].get("content", {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts).strip()
        return text or None

    def project_insights(self, metrics: Any) -> str:
        if not self.enabled:
            return NO_INSIGHTS
        prompt = (
            "Analise os seguintes KPIs corporativos e forneça 3 sugestões curtas de melhoria "
            f"em português: {json.dumps(metrics, ensure_ascii=False, default=str)}"
        )
        try:
            return self._generate(prompt, temperature=0.7, system=CONSULTANT_INSTRUCTION) or NO_INSIGHTS
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.error("Insight request failed: %s", exc)
            return INSIGHTS_ERROR

    def task_description(self, title: str) -> str:
        if not self.enabled:
            return NO_DESCRIPTION
        prompt = f'Crie uma descrição técnica breve (máximo 2 parágrafos) para a tarefa: "{title}"'
        try:
            return self._generate(prompt, temperature=0.5) or NO_DESCRIPTION
        except (requests.RequestException, ValueError, KeyError, IndexError) as exc:
            logger.error("Task description request failed: %s", exc)
            return DESCRIPTION_ERROR
