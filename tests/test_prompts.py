"""
Tests for reading prompt construction.
"""

import pytest

from tarot_api.models.api import FullReadingRequest, ReadingRequest
from tarot_api.services.prompts import (
    FULL_READING,
    READING,
    build_card_prompt,
    build_spread_prompt,
    fallback_text,
    language_instruction,
    orientation_label,
)


def card_request(**overrides) -> ReadingRequest:
    values = {
        "cardName": "The Moon",
        "positionLabel": "Past",
        "spreadName": "Three Card",
        "isReversed": False,
        "language": "zh-CN",
    }
    values.update(overrides)
    return ReadingRequest.model_validate(values)


class TestLanguage:
    """Tests for language handling."""

    @pytest.mark.parametrize(
        ("language", "expected"),
        [
            ("vi-VN", "Vui lòng trả lời bằng tiếng Việt."),
            ("zh-CN", "请用中文回答。"),
            ("zh-TW", "请用中文回答。"),
            ("en-US", "Please answer in English."),
            ("fr-FR", "Please answer in English."),
        ],
    )
    def test_instruction(self, language, expected):
        assert language_instruction(language) == expected

    def test_orientation_labels(self):
        assert orientation_label(False, "zh-CN") == "正位"
        assert orientation_label(True, "zh-CN") == "逆位"
        assert orientation_label(False, "vi-VN") == "Xuôi"
        assert orientation_label(True, "vi-VN") == "Ngược"
        assert orientation_label(True, "en-US") == "Reversed"

    def test_fallbacks_per_operation(self):
        assert fallback_text("zh-CN", READING) == "星辰沉默不语。"
        assert fallback_text("vi-VN", READING) == "Các vì sao im lặng."
        assert fallback_text("zh-CN", FULL_READING) == "连接宇宙意识时发生干扰。"
        assert fallback_text("en-US", FULL_READING)


class TestCardPrompt:
    """Tests for the single card prompt."""

    def test_contains_request_fields(self):
        prompt = build_card_prompt(card_request())
        assert 'Spread: "Three Card"' in prompt
        assert "【The Moon】 (正位)" in prompt
        assert "Position: 【Past】" in prompt
        assert "请用中文回答。" in prompt
        assert "max 150 words" in prompt

    def test_reversed(self):
        prompt = build_card_prompt(card_request(isReversed=True, language="vi-VN"))
        assert "(Ngược)" in prompt


class TestSpreadPrompt:
    """Tests for the full spread prompt."""

    def test_numbers_cards_in_order(self):
        request = FullReadingRequest.model_validate(
            {
                "spreadName": "Celtic Cross",
                "language": "en-US",
                "cards": [
                    {"name": "The Fool", "position": "Present", "isReversed": False},
                    {"name": "The Tower", "position": "Challenge", "isReversed": True},
                ],
            }
        )
        prompt = build_spread_prompt(request)
        assert '"Celtic Cross" spread' in prompt
        assert "1. [Present]: The Fool (Upright)" in prompt
        assert "2. [Challenge]: The Tower (Reversed)" in prompt
        assert "Please answer in English." in prompt
        assert prompt.index("The Fool") < prompt.index("The Tower")

    def test_includes_meaning_when_given(self):
        request = FullReadingRequest.model_validate(
            {
                "spreadName": "Single",
                "cards": [{"name": "The Sun", "position": "Now", "meaning": "Joy, success"}],
            }
        )
        assert "The Sun (Upright) - Joy, success" in build_spread_prompt(request)
