import json
import logging
import re
import time
from typing import Any, Dict, List, Optional, Set

import requests

from .imaging import DATA_URL_RE

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

FALLBACK_CHALLENGE = {
    'title': "Lost Item",
    'questions': ["What color is this item?"],
    'answers': [""],
}

QUESTION_PROMPT = """Analyze this lost item image and generate:
1. A CATEGORY title (e.g., "Pen", "Bag", "Smartphone").
2. Dynamic Verification Questions:
   - If the item is low-value (Pen, Pencil, basic Bottle, small stationery), ask exactly 1 question about COLOR.
   - If the item is high-value or tech (Phone, Laptop, Watch, Wallet), ask 2-3 specific questions (Color, Brand, Model, or distinct markings).
CRITICAL: The public sees a very dark B&W photo. Ask questions that cannot be guessed from a dark silhouette.
Provide output in JSON format."""

VERIFY_PROMPT = """Verify these answers for ownership of a lost item.
Be smart: "dark blue" is same as "blue".
Questions: {questions}
User Answers: {user_answers}
Correct Reference: {correct_answers}
Return JSON with boolean 'isCorrect'."""

QUESTION_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'title': {'type': 'STRING'},
        'questions': {
            'type': 'ARRAY',
            'items': {'type': 'STRING'},
            'description': "1 question for low-value, 2-3 for high-value.",
        },
        'answers': {
            'type': 'ARRAY',
            'items': {'type': 'STRING'},
            'description': "Factual reference answers.",
        },
    },
    'required': ['title', 'questions', 'answers'],
}

VERIFY_SCHEMA = {
    'type': 'OBJECT',
    'properties': {'isCorrect': {'type': 'BOOLEAN'}},
    'required': ['isCorrect'],
}


# Words that carry no answer of their own ("it's a Parker", "blue colour")
FILLER_WORDS = {
    'a', 'an', 'the', 'it', 'its', 's', 'is', 'was', 'my', 'one', 'kind', 'of',
    'colour', 'color', 'coloured', 'colored', 'brand', 'model',
}
SHADE_WORDS = {'dark', 'light', 'deep', 'pale', 'bright', 'matte', 'metallic'}


class GeminiError(Exception):
    pass


class VerificationService:
    """
    Builds and checks the ownership challenge for a found item.

    Question generation and answer checking go to Gemini when an API key is
    configured. Without one, or when the call fails, questions fall back to
    a single colour question and answers are checked by a local matcher
    that understands colour shades.
    """

    def __init__(self, api_key: Optional[str] = None, model: str = 'gemini-3-flash-preview',
                 timeout: float = 30, max_retries: int = 2, backoff: float = 1.0):
        self.api_key = api_key or None
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff

        # Color mappings for standardization
        self.color_mappings = {
            'red': ['red', 'crimson', 'scarlet', 'cherry', 'burgundy', 'maroon'],
            'blue': ['blue', 'navy', 'azure', 'cobalt', 'royal blue', 'sky blue', 'teal'],
            'green': ['green', 'emerald', 'forest', 'lime', 'olive', 'mint'],
            'yellow': ['yellow', 'gold', 'golden', 'amber', 'lemon', 'mustard'],
            'black': ['black', 'charcoal', 'ebony', 'jet black'],
            'white': ['white', 'ivory', 'pearl', 'snow', 'cream', 'off white'],
            'brown': ['brown', 'tan', 'beige', 'coffee', 'chocolate', 'camel'],
            'pink': ['pink', 'rose', 'magenta', 'fuchsia'],
            'purple': ['purple', 'violet', 'lavender', 'plum', 'indigo'],
            'orange': ['orange', 'tangerine', 'peach', 'coral', 'salmon'],
            'gray': ['gray', 'grey', 'silver', 'ash', 'slate', 'pewter', 'space gray'],
        }
        self._color_words = {word for variations in self.color_mappings.values()
                             for variation in variations for word in variation.split()}

    @property
    def ai_enabled(self) -> bool:
        return bool(self.api_key)

    # -------------------------
    # Gemini REST
    # -------------------------
    def _call_gemini(self, parts: List[Dict[str, Any]], schema: Dict[str, Any]) -> Dict[str, Any]:
        """Run one generateContent call and return the parsed JSON answer."""
        if not self.api_key:
            raise GeminiError("GEMINI_API_KEY is missing.")

        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"
        # Key travels in a header, never in the URL
        headers = {'Content-Type': 'application/json', 'x-goog-api-key': self.api_key}
        payload = {
            'contents': [{'parts': parts}],
            'generationConfig': {
                'responseMimeType': 'application/json',
                'responseSchema': schema,
            },
        }

        attempt = 0
        while True:
            try:
                response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                raise GeminiError(f"Request failed: {e}") from e

            if response.status_code == 429 or response.status_code >= 500:
                if attempt < self.max_retries:
                    wait = self.backoff * (2 ** attempt)
                    logger.warning("Gemini returned %s, retry %d/%d in %.1fs",
                                   response.status_code, attempt + 1, self.max_retries, wait)
                    time.sleep(wait)
                    attempt += 1
                    continue
            if response.status_code != 200:
                raise GeminiError(f"API error {response.status_code}: {response.text[:300]}")

            try:
                text = response.json()['candidates'][0]['content']['parts'][0]['text']
                result = json.loads(text)
            except (KeyError, IndexError, TypeError, ValueError) as e:
                raise GeminiError(f"Bad response structure: {e}") from e
            if not isinstance(result, dict):
                raise GeminiError("Expected a JSON object")
            return result

    # -------------------------
    # Challenge generation
    # -------------------------
    def generate_verification_questions(self, image_data_url: str) -> Dict[str, Any]:
        """Ask Gemini for a title plus questions and reference answers."""
        match = DATA_URL_RE.match(image_data_url or '')
        if not self.ai_enabled or not match:
            return dict(FALLBACK_CHALLENGE)

        parts = [
            {'inline_data': {'mime_type': match.group('mime') or 'image/jpeg',
                             'data': match.group('data')}},
            {'text': QUESTION_PROMPT},
        ]
        try:
            result = self._call_gemini(parts, QUESTION_SCHEMA)
        except GeminiError as e:
            logger.warning("Question generation failed, using fallback: %s", e)
            return dict(FALLBACK_CHALLENGE)

        questions = [str(q) for q in result.get('questions') or [] if str(q).strip()]
        if not questions:
            return dict(FALLBACK_CHALLENGE)
        answers = [str(a) for a in result.get('answers') or []]
        answers = (answers + [''] * len(questions))[:len(questions)]
        return {
            'title': str(result.get('title') or 'Found Item'),
            'questions': questions,
            'answers': answers,
        }

    # -------------------------
    # Answer checking
    # -------------------------
    def verify_answers(self, questions: List[str], user_answers: List[str],
                       correct_answers: List[str]) -> bool:
        if self.ai_enabled:
            prompt = VERIFY_PROMPT.format(
                questions=json.dumps(questions),
                user_answers=json.dumps(user_answers),
                correct_answers=json.dumps(correct_answers),
            )
            try:
                result = self._call_gemini([{'text': prompt}], VERIFY_SCHEMA)
                return result.get('isCorrect') is True
            except GeminiError as e:
                logger.warning("AI answer check failed, using local matcher: %s", e)

        return self.match_answers(user_answers, correct_answers)

    def _normalize_text(self, text: str) -> str:
        """Normalize text for better matching."""
        if not text:
            return ""
        text = re.sub(r'[^\w\s]', ' ', str(text).lower())
        return re.sub(r'\s+', ' ', text).strip()

    def _colors(self, text: str) -> Set[str]:
        """Every base colour a phrase names."""
        padded = f" {self._normalize_text(text)} "
        return {base_color for base_color, variations in self.color_mappings.items()
                if any(f" {variation} " in padded for variation in variations)}

    def _answer_matches(self, user_answer: str, reference: str) -> bool:
        """
        Lenient per-answer check.

        The user's meaningful words must all come from the reference, so
        listing many guesses in one answer never passes. Colour answers may
        instead name the same base colours as the reference, in any shade.
        """
        reference = self._normalize_text(reference)
        user_answer = self._normalize_text(user_answer)
        if not reference or not user_answer:
            return False
        if reference == user_answer:
            return True

        ref_words = set(reference.split())
        content = set(user_answer.split()) - FILLER_WORDS
        if not content:
            return False
        if content <= ref_words and not content <= SHADE_WORDS:
            return True

        ref_colors = self._colors(reference)
        if not ref_colors or self._colors(user_answer) != ref_colors:
            return False
        leftover = content - self._color_words - SHADE_WORDS
        return leftover <= ref_words

    def match_answers(self, user_answers: List[str], correct_answers: List[str]) -> bool:
        """Every reference answer must be matched by the answer at the same position."""
        if not correct_answers or len(user_answers) < len(correct_answers):
            return False
        return all(self._answer_matches(user, ref)
                   for user, ref in zip(user_answers, correct_answers))
