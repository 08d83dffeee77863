from config import NameForgeSettings


def test_language_gets_paradox_prefix():
    assert NameForgeSettings(LOCALISATION_LANGUAGE="german").LOCALISATION_LANGUAGE == (
        "l_german"
    )
    assert NameForgeSettings(LOCALISATION_LANGUAGE="l_french:").LOCALISATION_LANGUAGE == (
        "l_french"
    )


def test_generation_concurrency_is_at_least_one():
    assert NameForgeSettings(MAX_CONCURRENT_GENERATIONS=0).MAX_CONCURRENT_GENERATIONS == 1


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("NAMEFORGE_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("GENERATION_MODEL", "local-model")
    monkeypatch.setenv("LLM_RETRY_ATTEMPTS", "5")

    configured = NameForgeSettings()

    assert configured.LOG_LEVEL_STR == "DEBUG"
    assert configured.GENERATION_MODEL == "local-model"
    assert configured.LLM_RETRY_ATTEMPTS == 5
