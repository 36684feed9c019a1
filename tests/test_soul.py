"""Tests for SOUL loading and system prompt building."""

from agentgram.agent.soul import DEFAULT_SOUL, build_system_prompt, load_soul


class TestLoadSoul:
    """SOUL.md loading."""

    def test_load_from_file(self, tmp_path):
        soul_file = tmp_path / "SOUL.md"
        soul_file.write_text("# Ops Bot\nAnswer in one line.")
        assert load_soul(str(soul_file)) == "# Ops Bot\nAnswer in one line."

    def test_fallback_on_missing_file(self):
        assert load_soul("/nonexistent/SOUL.md") == DEFAULT_SOUL

    def test_fallback_on_none(self):
        assert load_soul(None) == DEFAULT_SOUL

    def test_fallback_on_empty_file(self, tmp_path):
        soul_file = tmp_path / "SOUL.md"
        soul_file.write_text("   \n  ")
        assert load_soul(str(soul_file)) == DEFAULT_SOUL

    def test_unicode_soul(self, tmp_path):
        soul_file = tmp_path / "SOUL.md"
        soul_file.write_text("# エージェント\n日本語で応答してください 🤖", encoding="utf-8")
        assert "エージェント" in load_soul(str(soul_file))


class TestBuildSystemPrompt:
    def test_soul_is_included(self):
        assert "Be helpful." in build_system_prompt("Be helpful.")

    def test_date_is_included(self):
        assert "Current date:" in build_system_prompt("soul")

    def test_name_included(self):
        assert "Your name: Jarvis" in build_system_prompt("soul", agent_name="Jarvis")

    def test_name_omitted_when_none(self):
        assert "Your name:" not in build_system_prompt("soul")

    def test_default_soul_asks_for_plain_text(self):
        assert "Plain text" in DEFAULT_SOUL
