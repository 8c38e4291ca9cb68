"""Fixed texts shown to the model and to the user."""

SYSTEM_PROMPT = """あなたは業務自動化アシスタント YouDoYou です。
ユーザーの業務をサポートするため、以下の能力があります：
- Notion database へのアクセス（タスク管理）

ユーザーの要望に応じて、必要なツールを使用してサポートしてください。
回答は日本語で、簡潔かつ分かりやすく。"""

SUMMARY_HEADER = "[Prior summary]"

# Saved as the reply when the turn budget runs out without a final answer.
FALLBACK_REPLY = "申し訳ありません、処理を完了できませんでした (Max turns reached)."


def get_system_prompt(summary: str = "") -> str:
    """Return the system instruction, prefixed with the thread summary if any."""
    if not summary:
        return SYSTEM_PROMPT
    return f"{SUMMARY_HEADER}\n{summary}\n\n{SYSTEM_PROMPT}"
