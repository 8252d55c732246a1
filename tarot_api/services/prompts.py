"""
Reading prompts and language-specific fallback text.
"""

from tarot_api.models.api import FullReadingRequest, ReadingRequest

READING = "reading"
FULL_READING = "full_reading"

_EMPTY_REPLY = {
    READING: {"zh": "星辰沉默不语。", "vi": "Các vì sao im lặng.", "en": "The stars are silent."},
    FULL_READING: {
        "zh": "连接宇宙意识时发生干扰。",
        "vi": "Lỗi kết nối vũ trụ.",
        "en": "The cosmic connection was disturbed.",
    },
}


def _language_family(language: str) -> str:
    if language == "vi-VN" or language.lower().startswith("vi"):
        return "vi"
    if language.lower().startswith("zh"):
        return "zh"
    return "en"


def language_instruction(language: str) -> str:
    """Answer-language line appended to every prompt."""
    family = _language_family(language)
    if family == "vi":
        return "Vui lòng trả lời bằng tiếng Việt."
    if family == "zh":
        return "请用中文回答。"
    return "Please answer in English."


def orientation_label(is_reversed: bool, language: str) -> str:
    """Localised upright/reversed label for a single card."""
    family = _language_family(language)
    if family == "zh":
        return "逆位" if is_reversed else "正位"
    if family == "vi":
        return "Ngược" if is_reversed else "Xuôi"
    return "Reversed" if is_reversed else "Upright"


def build_card_prompt(request: ReadingRequest) -> str:
    """Prompt for a short interpretation of one card in its position."""
    orientation = orientation_label(request.is_reversed, request.language)
    return (
        "You are a mystical Tarot reader.\n"
        f'Spread: "{request.spread_name}".\n'
        f"Card: 【{request.card_name}】 ({orientation}).\n"
        f"Position: 【{request.position_label}】.\n"
        "\n"
        f"{language_instruction(request.language)}\n"
        "Provide a short, profound, and spiritual interpretation (max 150 words).\n"
        "Focus on the meaning of the card in this specific position.\n"
        "Avoid filler phrases; respond with insight directly."
    )


def build_spread_prompt(request: FullReadingRequest) -> str:
    """Prompt for a structured analysis of a whole spread."""
    cards = "\n".join(
        f"{index}. [{card.position}]: {card.name} "
        f"({'Reversed' if card.is_reversed else 'Upright'})"
        + (f" - {card.meaning}" if card.meaning else "")
        for index, card in enumerate(request.cards, start=1)
    )
    return (
        f'You are a master Tarot reader. Provide a full analysis for the "{request.spread_name}" spread.\n'
        "\n"
        "Cards:\n"
        f"{cards}\n"
        "\n"
        f"{language_instruction(request.language)}\n"
        "\n"
        "Format (Markdown):\n"
        "### (Insight Title)\n"
        "(Content)\n"
        "\n"
        "Structure:\n"
        "1. Core Insight (The essence of the situation)\n"
        "2. Flow of Energy (Connections between cards)\n"
        "3. Advice (Actionable spiritual guidance)\n"
        "\n"
        "Tone: Mystical, empathetic, wise.\n"
        "Length: 600-800 words."
    )


def fallback_text(language: str, operation: str = READING) -> str:
    """Sentence returned in place of an empty model reply."""
    replies = _EMPTY_REPLY.get(operation, _EMPTY_REPLY[READING])
    return replies[_language_family(language)]
