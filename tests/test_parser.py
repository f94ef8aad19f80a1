from parser import Command, FallbackPrompt, parse


def test_build_defaults_to_android():
    cmd = parse("/build asvab cdl")
    assert cmd == Command(name="build", platform="android", apps=["asvab", "cdl"], raw_cmd="asvab cdl")


def test_build_with_latest_and_branch_with_spaces():
    cmd = parse("/build ios asvab latest branch dark mode")
    assert cmd.platform == "ios"
    assert cmd.apps == ["asvab"]
    assert cmd.use_latest_version is True
    assert cmd.branch == "dark mode"


def test_build_explicit_version_and_build_number():
    cmd = parse("/build android cdl v=1.2.3 b=45")
    assert cmd.version == "1.2.3"
    assert cmd.build_number == 45
    assert cmd.apps == ["cdl"]
    assert cmd.use_latest_version is False


def test_build_deduplicates_apps():
    assert parse("/build Asvab asvab, cdl").apps == ["asvab", "cdl"]


def test_versions_platform_and_apps():
    assert parse("/versions ios asvab") == Command(name="versions", platform="ios", apps=["asvab"])
    assert parse("/versions") == Command(name="versions", platform="all", apps=[])
    assert parse("/version all all") == Command(name="versions", platform="all", apps=[])


def test_simple_commands():
    assert parse("/branches").name == "branches"
    assert parse("/status").name == "status"
    assert parse("/help").name == "help"
    assert parse("/deploy now") == Command(name="unknown", raw_cmd="/deploy now")


def test_plain_text_is_a_fallback_prompt():
    assert parse("  build asvab please ") == FallbackPrompt(prompt="build asvab please")
