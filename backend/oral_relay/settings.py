from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Optional: cheaper model for follow-up questions (latency sensitive)
	gemini_model_questions: str | None = Field(default=None, validation_alias="GEMINI_MODEL_QUESTIONS")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="Oral Assessment Relay", validation_alias="OPENROUTER_TITLE")

	# Speech synthesis: ElevenLabs first, OpenAI speech as fallback
	elevenlabs_api_key: str | None = Field(default=None, validation_alias="ELEVENLABS_API_KEY")
	elevenlabs_model: str = Field(default="eleven_flash_v2", validation_alias="ELEVENLABS_MODEL")
	elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1", validation_alias="ELEVENLABS_BASE_URL")
	openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
	openai_base_url: str = Field(default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL")
	openai_tts_model: str = Field(default="tts-1", validation_alias="OPENAI_TTS_MODEL")
	openai_tts_voice: str = Field(default="alloy", validation_alias="OPENAI_TTS_VOICE")

	# Transcription (Google Cloud Speech-to-Text)
	speech_model: str = Field(default="default", validation_alias="SPEECH_MODEL")
	speech_sample_rate_hz: int = Field(default=48000, validation_alias="SPEECH_SAMPLE_RATE_HZ")
	max_transcription_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_TRANSCRIPTION_BYTES")
	# Upload cap for POST /transcribe
	max_upload_bytes: int = Field(default=25 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")

	# Relay behaviour
	silence_window_ms: int = Field(default=1000, validation_alias="SILENCE_WINDOW_MS")
	engine_timeout_seconds: float = Field(default=30.0, validation_alias="ENGINE_TIMEOUT_SECONDS")
	http_turn_timeout_seconds: float = Field(default=30.0, validation_alias="HTTP_TURN_TIMEOUT_SECONDS")
	retry_deferred_flush: bool = Field(default=True, validation_alias="RETRY_DEFERRED_FLUSH")
	listening_ack: bool = Field(default=True, validation_alias="LISTENING_ACK")
	demo_session_prefix: str = Field(default="demo-", validation_alias="DEMO_SESSION_PREFIX")

	# Database (unset means demo mode: no durable store)
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Logging
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	log_dir: str | None = Field(default="logs", validation_alias="LOG_DIR")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def demo_mode(self) -> bool:
		return not self.database_url

settings = Settings()
