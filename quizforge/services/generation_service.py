"""
Generation adapter backed by Google Gemini.

Produces question sets, extracts text from documents and images, explains
answers and runs follow-up chats. Calls are made once, without retries;
rate-limit and overload errors rotate the API key ring so the next request
uses another key.
"""
import json
import logging
import re
from typing import Any, AsyncIterator

from google import genai
from google.genai import errors, types

from quizforge.config import (
    DEFAULT_NUM_QUESTIONS,
    GEMINI_MODEL,
    NUM_QUESTIONS_AI_DECIDES,
)
from quizforge.engine.models import (
    LanguageOption,
    Question,
    QuestionStatus,
    TestConfig,
    TestInputMethod,
)
from quizforge.utils.time_utils import epoch_millis

logger = logging.getLogger(__name__)

QUESTIONS_TEMPERATURE = 0.3
EXPLANATION_TEMPERATURE = 0.2
CHAT_TEMPERATURE = 0.5

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)
_ROTATE_MARKERS = ("429", "overloaded", "rate limit")


class GenerationError(Exception):
    """Generation failed; the message is shown to the user."""


class ApiKeyRing:
    """Round-robin holder of Gemini API keys."""

    def __init__(self, keys: list[str]):
        self.keys = [key for key in keys if key]
        self.index = 0

    def __len__(self) -> int:
        return len(self.keys)

    def current(self) -> str:
        if not self.keys:
            raise GenerationError(
                "GEMINI_API_KEY environment variable not set or is empty. "
                "Please configure it with one or more comma-separated keys."
            )
        return self.keys[self.index]

    def rotate(self) -> None:
        if len(self.keys) > 1:
            self.index = (self.index + 1) % len(self.keys)
            logger.info(f"Rotated to API key index {self.index}")

    def rotate_on(self, error: Exception) -> bool:
        """Rotate when the error looks like a rate limit or overload."""
        message = str(error).lower()
        if any(marker in message for marker in _ROTATE_MARKERS):
            self.rotate()
            return True
        return False


def parse_json_from_markdown(text: str) -> Any:
    """Parse JSON that may be wrapped in a Markdown code fence. None on failure."""
    raw = (text or "").strip()
    match = _FENCE_RE.match(raw)
    if match and match.group(2):
        raw = match.group(2).strip()
    # models sometimes drop the comma between an array and the next key
    raw = re.sub(r'\]\s*"', '], "', raw)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON response: {e}")
        logger.debug(f"Raw text: {text}")
        return None


def questions_from_payload(payload: Any) -> list[Question]:
    """Turn the model's JSON array into unvisited questions."""
    if not isinstance(payload, list):
        raise GenerationError(
            "AI did not return valid question data. The response was not a JSON array."
        )
    stamp = epoch_millis()
    questions = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict) or not item.get("questionText"):
            raise GenerationError(f"AI returned an invalid question at position {index + 1}.")
        options = item.get("options") or None
        try:
            questions.append(
                Question(
                    id=f"q-{stamp}-{index}",
                    question_text=str(item["questionText"]),
                    passage_text=item.get("passageText") or None,
                    options=[str(option) for option in options] if options else None,
                    correct_answer_index=(
                        int(item["correctAnswerIndex"])
                        if options and item.get("correctAnswerIndex") is not None
                        else None
                    ),
                    correct_answer_text=(
                        None if options else str(item.get("correctAnswerText", ""))
                    ),
                    status=QuestionStatus.UNVISITED,
                )
            )
        except (TypeError, ValueError) as e:
            raise GenerationError(
                f"AI returned an invalid question at position {index + 1}: {e}"
            ) from e
    return questions


def _letter(index: int) -> str:
    return chr(ord("A") + index)


def build_questions_prompt(
    input_method: TestInputMethod,
    content: str,
    num_questions: int,
    language: LanguageOption | None = None,
    difficulty_level: int | None = None,
    custom_instructions: str | None = None,
    tita_enabled: bool = False,
) -> str:
    target_language = language.value if language else "the source document's primary language"
    guided = input_method in (TestInputMethod.SYLLABUS, TestInputMethod.TOPIC)

    instructions = [
        "Identify passages/contexts and place them in 'passageText'. The "
        "'questionText' should then contain the actual question. If no passage, "
        "omit 'passageText'."
    ]
    if input_method == TestInputMethod.DOCUMENT:
        instructions.insert(0, "The provided content is from a document.")
        instructions.append(
            "Identify actual questions (MCQ or type-in-the-answer) and ignore "
            "non-question content like instructions or cover pages."
        )
    if language:
        instructions.append(
            f"Language Focus: Generate questions strictly in {language.value}. "
            f"All passageText, questionText and options must be in {language.value}."
        )
    if difficulty_level and guided:
        instructions.append(f"Difficulty Level: {difficulty_level} on a scale of 1 to 5.")
    if custom_instructions and guided:
        instructions.append(f"User-Provided Custom Instructions: {custom_instructions}")

    json_note = (
        "The response MUST be a valid JSON array of objects, one per question.\n"
        f'MCQ: {{"passageText": "optional, in {target_language}", '
        f'"questionText": "in {target_language}", '
        '"options": ["A", "B", "C", "D"], "correctAnswerIndex": 0}\n'
        f'TITA: {{"passageText": "optional", "questionText": "question with a blank '
        f'in {target_language}", "correctAnswerText": "answer"}}\n'
        "For MCQs 'options' MUST have 4 distinct strings and 'correctAnswerIndex' "
        "must be a number 0-3. For TITA questions omit 'options' and "
        "'correctAnswerIndex'. Use an HTML <table> in 'questionText' for "
        "\"Match the Following\" questions."
    )

    kinds = "both MCQ and TITA" if tita_enabled else "only MCQ"
    if num_questions == NUM_QUESTIONS_AI_DECIDES and input_method == TestInputMethod.DOCUMENT:
        task = (
            f"Extract ALL identifiable unique questions ({kinds}) from the document "
            f"in {target_language}."
        )
    else:
        count = num_questions if num_questions > 0 else DEFAULT_NUM_QUESTIONS
        task = f"Generate EXACTLY {count} unique questions ({kinds})."
        if not tita_enabled:
            task += (
                "\nIMPORTANT: Do NOT generate any type-in-the-answer or "
                "fill-in-the-blank questions."
            )

    bullets = "\n".join(f"- {line}" for line in instructions)
    return (
        "You are an expert multilingual test creator. "
        f"Based on the {input_method.value} content:\n---\n{content}\n---\n"
        f"{bullets}\n{task}\n{json_note}"
    )


def _question_context(question: Question, include_user_answer: bool) -> str:
    lines = []
    if question.passage_text:
        lines.append(f"Passage:\n{question.passage_text}\n---")
    lines.append(f"Question: {question.question_text}")
    if question.is_choice:
        options = " | ".join(
            f"{_letter(i)}. {option}" for i, option in enumerate(question.options)
        )
        correct = question.correct_answer_index
        lines.append(f"Options: {options}")
        lines.append(f"Correct Answer: {_letter(correct)}. {question.options[correct]}")
        if include_user_answer and question.user_answer_index is not None:
            chosen = question.user_answer_index
            lines.append(f"User's Answer: {_letter(chosen)}. {question.options[chosen]}")
    else:
        lines.append(f"Correct Answer: {question.correct_answer_text}")
        if include_user_answer and question.user_answer_text:
            lines.append(f"User's Answer: {question.user_answer_text}")
    return "\n".join(lines)


CHAT_SYSTEM_INSTRUCTION = (
    "You are Elsa, a helpful AI assistant. Your personality is razor-sharp, "
    "clear and composed.\n"
    "- Use markdown for formatting. Each list item must be on a new line.\n"
    "- Stick to the context of the question.\n"
    "- Keep responses brief.\n"
    "- Do not offer to change the correct answer."
)


class FollowUpChat:
    """Chat seeded with one question; replies are streamed as text chunks."""

    def __init__(self, chat: Any, key_ring: ApiKeyRing):
        self._chat = chat
        self._key_ring = key_ring

    async def stream(self, message: str) -> AsyncIterator[str]:
        try:
            async for chunk in await self._chat.send_message_stream(message):
                if chunk.text:
                    yield chunk.text
        except errors.APIError as e:
            logger.error(f"Follow-up chat failed: {e}")
            self._key_ring.rotate_on(e)
            raise GenerationError(f"Failed to get a reply: {e}") from e


class GeminiGenerator:
    """Generation adapter using the google-genai async client."""

    def __init__(self, key_ring: ApiKeyRing, model: str = GEMINI_MODEL):
        self.key_ring = key_ring
        self.model = model
        self._clients: dict[str, genai.Client] = {}

    def _client(self) -> genai.Client:
        key = self.key_ring.current()
        if key not in self._clients:
            self._clients[key] = genai.Client(api_key=key)
        return self._clients[key]

    async def _generate(
        self, contents: Any, config: types.GenerateContentConfig, action: str
    ) -> str:
        try:
            response = await self._client().aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config,
            )
        except errors.APIError as e:
            logger.error(f"Error {action}: {e}")
            self.key_ring.rotate_on(e)
            raise GenerationError(f"Failed {action}: {e}") from e
        return (getattr(response, "text", None) or "").strip()

    async def generate_questions(
        self,
        input_method: TestInputMethod,
        content: str,
        num_questions: int,
        language: LanguageOption | None = None,
        difficulty_level: int | None = None,
        custom_instructions: str | None = None,
        tita_enabled: bool = False,
    ) -> list[Question]:
        prompt = build_questions_prompt(
            input_method,
            content,
            num_questions,
            language,
            difficulty_level,
            custom_instructions,
            tita_enabled,
        )
        text = await self._generate(
            prompt,
            types.GenerateContentConfig(
                temperature=QUESTIONS_TEMPERATURE,
                response_mime_type="application/json",
            ),
            "to generate questions",
        )
        payload = parse_json_from_markdown(text)
        if payload is None:
            raise GenerationError(
                "AI did not return valid question data. The response was not a JSON array."
            )
        questions = questions_from_payload(payload)
        if not questions:
            target = language.value if language else "the source document's primary language"
            raise GenerationError(
                "AI returned an empty list of questions. This might be because no "
                "questions were identifiable, no content matched the selected "
                f"language ({target}), or the combination of topic/syllabus and "
                "difficulty yielded no results."
            )
        logger.info(f"Generated {len(questions)} questions from {input_method.value}")
        return questions

    async def generate_for_config(self, config: TestConfig, content: str) -> list[Question]:
        return await self.generate_questions(
            config.input_method,
            content,
            config.num_questions,
            config.selected_language,
            config.difficulty_level,
            config.custom_instructions,
            config.tita_enabled,
        )

    async def extract_text(self, data: bytes, mime_type: str) -> str:
        """Extract text from an image or PDF."""
        contents = [
            types.Part.from_bytes(data=data, mime_type=mime_type),
            "Extract all text from this document/image. Respond with only the "
            "extracted text. If the document is primarily in a non-English "
            "language (e.g., Hindi), extract the text in that language.",
        ]
        try:
            return await self._generate(
                contents, types.GenerateContentConfig(), "to extract text"
            )
        except GenerationError as e:
            if "400" in str(e):
                raise GenerationError(
                    "The uploaded file could not be processed. It might be "
                    "corrupted or an unsupported format."
                ) from e
            raise

    async def generate_explanation(self, question: Question) -> str:
        prompt = (
            "You are an expert tutor. For the following question:\n---\n"
            f"{_question_context(question, include_user_answer=True)}\n---\n"
            "Provide a concise explanation for why the correct answer is correct. "
            "If the user answered incorrectly, also explain why their choice is "
            "wrong. Keep it to a few sentences and do not repeat the question or "
            "options. Answer in the same language as the question if possible."
        )
        return await self._generate(
            prompt,
            types.GenerateContentConfig(temperature=EXPLANATION_TEMPERATURE),
            "to generate explanation",
        )

    def open_follow_up_chat(
        self, question: Question, explanation: str | None = None
    ) -> FollowUpChat:
        explanation_text = (
            f"Explanation: {explanation}"
            if explanation
            else "An official explanation has not been provided. Based on the "
            "question and correct answer, please assist the user."
        )
        seed = (
            "Context for AI: The user is asking about the following question. "
            "Your persona is Elsa.\n---\n"
            f"{_question_context(question, include_user_answer=False)}\n"
            f"{explanation_text}\n---\n"
            "The user's next message is their actual question."
        )
        chat = self._client().aio.chats.create(
            model=self.model,
            history=[
                types.Content(role="user", parts=[types.Part(text=seed)]),
                types.Content(
                    role="model",
                    parts=[types.Part(text=(
                        "Context understood. I am ready to answer the user's "
                        "follow-up question as Elsa."
                    ))],
                ),
            ],
            config=types.GenerateContentConfig(
                temperature=CHAT_TEMPERATURE,
                system_instruction=CHAT_SYSTEM_INSTRUCTION,
            ),
        )
        return FollowUpChat(chat, self.key_ring)
