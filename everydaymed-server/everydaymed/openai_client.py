# everydaymed/openai_client.py
import json
import logging
import re
import traceback
from typing import List

import httpx

from .config import Settings
from .errors import LLMError
from .judge import ANSWER_INVALID, parse_yes_no

log = logging.getLogger(__name__)

GENERATE_CASE_PROMPT = (
    "Você cria casos clínicos enigmáticos para um jogo educativo de medicina.\n"
    "Escolha uma doença real e clinicamente relevante, variando entre especialidades "
    "(cardiologia, neurologia, gastroenterologia, infectologia, etc.).\n"
    "Escreva um caso clínico narrativo de um paciente fictício, com sintomas, história "
    "e exame físico inicial, em linguagem médica e SEM mencionar o nome da doença.\n"
    "Responda APENAS com JSON válido, com as chaves:\n"
    '  "disease_name": nome exato da doença,\n'
    '  "description": caso clínico de 150-200 palavras sem revelar o diagnóstico,\n'
    '  "main_symptoms": lista com 5 sintomas,\n'
    '  "risk_factors": lista com 4 fatores de risco,\n'
    '  "differential_diagnoses": lista com 4 diagnósticos diferenciais,\n'
    '  "treatment": abordagem terapêutica de 100-150 palavras.'
)

QUESTION_PROMPT = (
    "Você é um médico respondendo perguntas sobre um caso clínico.\n\n"
    "CONTEXTO DA DOENÇA:\n{context}\n\n"
    'Responda APENAS "Sim", "Não" ou "Pergunta inválida".\n'
    "Nunca mencione o nome da doença. Se a pergunta for sobre o nome da doença, "
    "não puder ser respondida com sim/não, não for clinicamente relevante ou a "
    'informação não estiver no contexto, responda "Pergunta inválida".\n\n'
    "PERGUNTA: {question}\n"
    "RESPOSTA (uma palavra):"
)

HINT_PROMPT = (
    "Você é um professor de medicina dando dicas para um estudante diagnosticar uma doença.\n\n"
    "CONTEXTO DA DOENÇA:\n{context}\n\n"
    "Escreva a dica {number} de {total}, sem mencionar o nome da doença.\n"
    "Dica 1: sutil, sistema ou categoria afetada. "
    "Dica 2: mais específica, sintomas característicos. "
    "Dica 3: direta, quase reveladora.\n"
    "Não repita as dicas anteriores: {previous}\n\n"
    "Responda com 1-2 frases.\n"
    "DICA {number}:"
)

# Returned when USE_LLM is off, so the game can run without network access
CANNED_CASE = {
    "disease_name": "Pneumonia Comunitária",
    "description": (
        "Paciente masculino, 67 anos, tabagista, procura atendimento com febre de 38,9 °C "
        "há três dias, tosse produtiva com escarro amarelado e dor torácica ventilatório-"
        "dependente à direita. Ao exame, taquipneico, com estertores crepitantes em base "
        "direita e saturação de 91% em ar ambiente."
    ),
    "main_symptoms": ["Febre", "Tosse produtiva", "Dispneia", "Dor pleurítica", "Calafrios"],
    "risk_factors": ["Idade avançada", "Tabagismo", "DPOC", "Imunossupressão"],
    "differential_diagnoses": ["Bronquite aguda", "Tuberculose", "Embolia pulmonar", "Insuficiência cardíaca"],
    "treatment": "Antibioticoterapia empírica conforme gravidade, hidratação e suporte de oxigênio.",
}


async def _call_chat(settings: Settings, system: str, *, max_tokens: int, temperature: float,
                     json_mode: bool = False, timeout: int = 45) -> str:
    payload = {
        "model": settings.openai_model,
        "messages": [{"role": "system", "content": system}],
        "max_tokens": max_tokens,
        "temperature": temperature,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    headers = {"Authorization": f"Bearer {settings.openai_api_key}", "Content-Type": "application/json"}
    async with httpx.AsyncClient(base_url=settings.openai_api_base, headers=headers, timeout=timeout) as client:
        resp = await client.post("/chat/completions", json=payload)
        resp.raise_for_status()
        data = resp.json()

    # Chat completions response: data["choices"][0]["message"]["content"]
    text = ""
    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        text = (choices[0].get("message") or {}).get("content") or ""

    return text.strip()


def case_context(case) -> str:
    """Disease block shared by the question and hint prompts."""
    return (
        f"DOENÇA: {case['disease_name']}\n"
        f"DESCRIÇÃO: {case['description']}\n"
        f"SINTOMAS: {', '.join(case.get('main_symptoms') or [])}\n"
        f"FATORES DE RISCO: {', '.join(case.get('risk_factors') or [])}\n"
        f"DIAGNÓSTICOS DIFERENCIAIS: {', '.join(case.get('differential_diagnoses') or [])}\n"
        f"TRATAMENTO: {case.get('treatment') or ''}"
    )


def _parse_case(text: str) -> dict:
    m = re.search(r"\{.*\}", text or "", re.S)
    if not m:
        raise LLMError("No JSON object in case generation reply")
    try:
        data = json.loads(m.group(0))
    except json.JSONDecodeError as e:
        raise LLMError(f"Malformed case JSON: {e}") from e

    if not isinstance(data, dict) or not data.get("disease_name") or not data.get("description"):
        raise LLMError("Invalid disease data received from the model")

    return {
        "disease_name": str(data["disease_name"]).strip(),
        "description": str(data["description"]).strip(),
        "main_symptoms": list(data.get("main_symptoms") or []),
        "risk_factors": list(data.get("risk_factors") or []),
        "differential_diagnoses": list(data.get("differential_diagnoses") or []),
        "treatment": str(data.get("treatment") or ""),
    }


async def generate_case(settings: Settings) -> dict:
    """
    Ask the model for a new case of the day.
    Raises LLMError if the call fails or the reply is not a usable case.
    """
    if not settings.use_llm:
        return dict(CANNED_CASE)

    try:
        text = await _call_chat(settings, GENERATE_CASE_PROMPT, max_tokens=1500,
                                temperature=0.7, json_mode=True)
    except (httpx.HTTPError, ValueError) as e:
        log.error("Case generation failed: %s\n%s", e, traceback.format_exc())
        raise LLMError(f"LLM backend failed: {e}") from e

    return _parse_case(text)


async def answer_yes_no(settings: Settings, question: str, case) -> str:
    """Returns "Sim", "Não" or "Pergunta inválida"; upstream failures count as invalid."""
    if not settings.use_llm:
        return ANSWER_INVALID

    prompt = QUESTION_PROMPT.format(context=case_context(case), question=question)
    try:
        text = await _call_chat(settings, prompt, max_tokens=10, temperature=0.1)
    except (httpx.HTTPError, ValueError) as e:
        log.error("Yes/no answer failed: %s\n%s", e, traceback.format_exc())
        return ANSWER_INVALID

    return parse_yes_no(text)


async def generate_hint(settings: Settings, case, hint_number: int, previous_hints: List[str]) -> str:
    if not settings.use_llm:
        return f"Dica {hint_number}: reveja os sintomas principais do caso."

    prompt = HINT_PROMPT.format(
        context=case_context(case),
        number=hint_number,
        total=settings.game.max_hints,
        previous=" | ".join(previous_hints) or "nenhuma",
    )
    try:
        text = await _call_chat(settings, prompt, max_tokens=150, temperature=0.7)
    except (httpx.HTTPError, ValueError) as e:
        log.error("Hint generation failed: %s\n%s", e, traceback.format_exc())
        raise LLMError(f"LLM backend failed: {e}") from e

    if not text:
        raise LLMError("No hint content received from the model")
    return text
