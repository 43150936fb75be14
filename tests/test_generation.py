import asyncio
import json

import httpx
import pytest

from oral_relay.engines.generation import (
	FALLBACK_QUESTION,
	SYSTEM_INSTRUCTION,
	GeminiQuestionGenerator,
	build_question_prompt,
	clean_question,
	generate_or_fallback,
)
from oral_relay.gemini_client import GeminiClient, GenerationError
from oral_relay.schemas import TranscriptEntry
from oral_relay.settings import settings


@pytest.fixture
def history():
	return [
		TranscriptEntry(speaker="ai", text="¿Qué te gusta hacer?"),
		TranscriptEntry(speaker="student", text="Me gusta leer libros"),
	]


@pytest.fixture(autouse=True)
def no_openrouter(monkeypatch):
	monkeypatch.setattr(settings, "openrouter_api_key", None)
	monkeypatch.setattr(settings, "gemini_provider", "ai_studio")


def gemini_reply(text):
	return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def test_prompt_carries_rubric_and_history(history, assessment_rubric):
	prompt = build_question_prompt(history, assessment_rubric, "es")
	assert "Spanish" in prompt
	assert "Accuracy (30% weight): Grammar and vocabulary" in prompt
	assert "Content (40% weight)" in prompt
	assert "Student: Me gusta leer libros" in prompt
	assert "AI: ¿Qué te gusta hacer?" in prompt


@pytest.mark.parametrize(
	"raw,expected",
	[
		("  What do you read?  ", "What do you read?"),
		('"What do you read?"', "What do you read?"),
		("Question: What do you read?", "What do you read?"),
		("", ""),
		(None, ""),
	],
)
def test_clean_question(raw, expected):
	assert clean_question(raw) == expected


async def test_gemini_generator_posts_prompt(history, assessment_rubric):
	seen = []

	def handler(request):
		seen.append(request)
		return httpx.Response(200, json=gemini_reply(" ¿Qué libro te gusta más? \n"))

	client = GeminiClient("g-key", base_url="https://gemini.test/generate", transport=httpx.MockTransport(handler))
	generator = GeminiQuestionGenerator(client)
	question = await generator.generate(history, assessment_rubric, "es", {"sessionId": "s-1"})
	await generator.aclose()

	assert question == "¿Qué libro te gusta más?"
	req = seen[0]
	assert req.url.params["key"] == "g-key"
	body = json.loads(req.content)
	assert body["systemInstruction"]["parts"][0]["text"] == SYSTEM_INSTRUCTION
	assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 150}
	assert "Me gusta leer libros" in body["contents"][0]["parts"][0]["text"]


async def test_empty_model_output_is_an_error(history, assessment_rubric):
	transport = httpx.MockTransport(lambda r: httpx.Response(200, json=gemini_reply("   ")))
	generator = GeminiQuestionGenerator(GeminiClient("k", base_url="https://gemini.test", transport=transport))
	with pytest.raises(GenerationError):
		await generator.generate(history, assessment_rubric, "es")
	await generator.aclose()


async def test_gemini_error_without_fallback_raises():
	client = GeminiClient(
		"k",
		base_url="https://gemini.test",
		transport=httpx.MockTransport(lambda r: httpx.Response(503, text="overloaded")),
	)
	with pytest.raises(GenerationError):
		await client.generate("hi")
	await client.aclose()


async def test_openrouter_fallback(monkeypatch):
	monkeypatch.setattr(settings, "openrouter_api_key", "or-key")
	calls = []

	def handler(request):
		calls.append(request)
		if request.url.host == "gemini.test":
			return httpx.Response(200, json={"candidates": []})
		return httpx.Response(200, json={"choices": [{"message": {"content": "Fallback question?"}}]})

	client = GeminiClient("k", base_url="https://gemini.test", transport=httpx.MockTransport(handler))
	text = await client.generate("hi", system_instruction="be brief")
	await client.aclose()

	assert text == "Fallback question?"
	fallback = json.loads(calls[1].content)
	assert fallback["messages"][0] == {"role": "system", "content": "be brief"}
	assert calls[1].headers["authorization"] == "Bearer or-key"


def test_client_requires_api_key(monkeypatch):
	monkeypatch.setattr(settings, "gemini_api_key", None)
	with pytest.raises(GenerationError):
		GeminiClient()


class BrokenGenerator:
	async def generate(self, *args):
		raise GenerationError("quota exceeded")


class BlankGenerator:
	async def generate(self, *args):
		return "   "


class SlowGenerator:
	async def generate(self, *args):
		await asyncio.sleep(1)
		return "too late"


@pytest.mark.parametrize("generator", [BrokenGenerator(), BlankGenerator(), SlowGenerator()])
async def test_generate_or_fallback(generator, history, assessment_rubric):
	question = await generate_or_fallback(generator, history, assessment_rubric, "es", timeout=0.05)
	assert question == FALLBACK_QUESTION
