"""
Text generation client for AI plan drafting (Gemini generateContent over REST).
"""
import requests
from flask import current_app

from services.errors import ServerConfigurationError


class AIGenerationError(Exception):
    """The completion service failed or returned nothing usable."""


def build_plan_prompt(prompt, max_days):
    """Wraps the user's request with the plan-duration constraint the model must respect."""
    instruction = (
        "You are a planning assistant.\n"
        f"CONSTRAINT: The user is limited to a maximum plan duration of {max_days} days.\n"
        f"If the user asks for more, create a plan only up to Day {max_days} and append a note about the limit."
    )
    return f"{instruction}\n\nUser Request: {prompt}"


def generate_text(prompt, max_output_tokens=4000, temperature=0.7):
    """
    Sends a prompt to the completion service and returns the generated text.

    Args:
        prompt (str): Full prompt, constraints included.
        max_output_tokens (int): Generation cap.
        temperature (float): Sampling temperature.

    Returns:
        str: The concatenated text parts of the first candidate.

    Raises:
        ServerConfigurationError: If GEMINI_API_KEY is not configured.
        AIGenerationError: On network errors, non-2xx responses or an empty answer.
    """
    api_key = current_app.config.get('GEMINI_API_KEY')
    if not api_key:
        current_app.logger.critical("GEMINI_API_KEY not set on server.")
        raise ServerConfigurationError("Server misconfiguration")

    url = f"{current_app.config['GEMINI_API_URL']}/models/{current_app.config['GEMINI_MODEL']}:generateContent"
    body = {
        'contents': [{'role': 'user', 'parts': [{'text': prompt}]}],
        'generationConfig': {'maxOutputTokens': max_output_tokens, 'temperature': temperature},
    }

    try:
        response = requests.post(
            url,
            params={'key': api_key},
            json=body,
            timeout=current_app.config['AI_REQUEST_TIMEOUT'],
        )
        response.raise_for_status() # Raise HTTPError for 4xx/5xx.
        data = response.json()
    except requests.exceptions.RequestException as e:
        current_app.logger.error(f"AI generation request failed: {e}", exc_info=True)
        raise AIGenerationError("AI generation failed") from e
    except ValueError as e: # Body was not JSON.
        current_app.logger.error(f"AI generation returned invalid JSON: {e}")
        raise AIGenerationError("AI generation failed") from e

    candidates = data.get('candidates') or []
    parts = ((candidates[0].get('content') or {}).get('parts') or []) if candidates else []
    text = ''.join(part.get('text', '') for part in parts if isinstance(part, dict))
    if not text:
        current_app.logger.warning(f"AI generation returned no text (finishReason: "
                                   f"{candidates[0].get('finishReason') if candidates else None}).")
        raise AIGenerationError("Empty response from AI service")
    return text
