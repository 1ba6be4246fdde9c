"""Questionary / prompt_toolkit theme for otelgw.

Questionary uses prompt_toolkit under the hood. This module defines the
central styles so every interactive prompt (text, password, confirm) looks
the same.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_INPUT = Style.from_dict(
    {
        "qmark": "bold ansibrightcyan",
        "question": "bold ansibrightcyan",
        "answer": "bold ansibrightgreen",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "qmark": "bold ansibrightred",
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "pointer": "bold ansibrightred",
        "highlighted": "bold ansibrightred",
        "selected": "bold ansibrightred",
        "separator": "ansibrightblack",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
        "disabled": "ansibrightblack",
    }
)
