from __future__ import annotations
from typing import Dict, List

from .schemas import RubricCriterion, RubricSpec


SUPPORTED_LANGUAGES: Dict[str, str] = {
	"en": "English",
	"es": "Spanish",
	"ar": "Arabic",
	"ru": "Russian",
	"uk": "Ukrainian",
}

DEFAULT_LANGUAGE = "en"

# BCP-47 locales for the speech recogniser
SPEECH_LOCALES: Dict[str, str] = {
	"en": "en-US",
	"es": "es-ES",
	"ar": "ar-SA",
	"ru": "ru-RU",
	"uk": "uk-UA",
}

INITIAL_QUESTIONS: Dict[str, str] = {
	"en": "Hello! I'm your AI interviewer. Can you please introduce yourself and tell me a bit about your background?",
	"es": "¡Hola! Soy tu entrevistador de IA. ¿Puedes presentarte y contarme un poco sobre tu experiencia?",
	"ar": "مرحبا! أنا المحاور الذكي الخاص بك. هل يمكنك أن تقدم نفسك وتخبرني قليلاً عن خلفيتك؟",
	"ru": "Привет! Я ваш ИИ-интервьюер. Можете ли вы представиться и рассказать немного о своем опыте?",
	"uk": "Привіт! Я ваш ШІ-інтерв'юер. Чи можете ви представитися і розповісти трохи про свій досвід?",
}


def is_supported(code: str | None) -> bool:
	return bool(code) and code in SUPPORTED_LANGUAGES


def language_name(code: str) -> str:
	return SUPPORTED_LANGUAGES.get(code, code)


def speech_locale(code: str) -> str:
	# Already a locale (e.g. "pt-BR"): pass through
	if "-" in code:
		return code
	return SPEECH_LOCALES.get(code, code)


def initial_question(code: str) -> str:
	return INITIAL_QUESTIONS.get(code, INITIAL_QUESTIONS[DEFAULT_LANGUAGE])


def default_criteria() -> List[RubricCriterion]:
	return [
		RubricCriterion(name="Accuracy", weight=0.3, description="Grammar and vocabulary correctness"),
		RubricCriterion(name="Fluency", weight=0.3, description="Speech flow and natural expression"),
		RubricCriterion(name="Content", weight=0.4, description="Relevance and coherence of responses"),
	]


def default_rubric(language: str) -> RubricSpec:
	return RubricSpec(name="Basic Conversation Assessment", language=language, criteria=default_criteria())
