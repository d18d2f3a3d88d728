import pytest

from credkeeper.secrets.edit import NEW_FILE_TEMPLATE, Editor, main


@pytest.fixture
def new_cleartext(tmp_path):
    path = tmp_path / "new.yml"
    path.write_text("api_key: abc\nnested:\n  x: 1\n")
    return path


def test_edit_without_changes(store, capsys):
    editor = Editor("true", store, "staging")
    editor.main()
    out, err = capsys.readouterr()
    assert "No changes from original cleartext. Not updating." in out
    assert not store.keys.key_exists("staging")


def test_new_environment_starts_from_template(store):
    editor = Editor("true", store, "staging")
    editor.original_cleartext = ""
    editor.cleartext = NEW_FILE_TEMPLATE.format(environment="staging")
    editor.edit()
    assert editor.cleartext.startswith("# Secrets for staging, as YAML.")


def test_edit_writes_secrets(store, new_cleartext, capsys):
    editor = Editor(f"cp {new_cleartext}", store, "staging")
    editor.main()
    assert store.read("staging") == {"api_key": "abc", "nested": {"x": 1}}
    out, err = capsys.readouterr()
    assert "Updated secrets for staging." in out


def test_edit_existing_secrets(store):
    store.write("staging", {"old": "value"})
    editor = Editor("sed -i -e 's/value/changed/'", store, "staging")
    editor.main()
    assert store.read("staging") == {"old": "changed"}


def test_edit_refuses_corrupted_secrets(store, config, capsys):
    store.write("staging", {"old": "value"})
    (config.credentials_dir / "staging.yml.enc").write_bytes(b"garbage")
    assert main("true", "staging", config) == 1
    out, err = capsys.readouterr()
    assert "Could not decrypt" in err
    assert (config.credentials_dir / "staging.yml.enc").read_bytes() == (
        b"garbage"
    )


def test_edit_unknown_environment(config, capsys):
    config.allowed_environments = ["staging"]
    assert main("true", "production", config) == 1
    out, err = capsys.readouterr()
    assert "Unknown environment(s): production" in err


def test_edit_command_loop(store, capsys):
    editor = Editor("true", store, "staging")
    editor.cleartext = "asdf: 1\n"
    editor.original_cleartext = ""

    with pytest.raises(ValueError):
        editor.process_cmd("asdf")

    def broken_cmd():
        raise RuntimeError("editor is broken")

    editor.edit = broken_cmd
    editor.encrypt = broken_cmd

    cmds = ["edit", "asdf", "encrypt", "quit"]

    def _input():
        return cmds.pop(0)

    editor._input = _input
    editor.interact()

    out, err = capsys.readouterr()
    assert err == ""
    assert out.count("An error occurred: editor is broken") == 3
    assert "An error occurred: unknown command `asdf`" in out
    assert "\tquit       -- quits and loses your changes" in out
    assert cmds == []


def test_invalid_yaml_keeps_changes(store, capsys):
    editor = Editor("true", store, "staging")
    editor.original_cleartext = ""
    editor.cleartext = "key: [unclosed\n"
    cmds = ["quit"]
    editor._input = lambda: cmds.pop(0)
    editor.interact()
    out, err = capsys.readouterr()
    assert "An error occurred: Malformed secrets" in out
    assert editor.cleartext == "key: [unclosed\n"
    assert store.read("staging") == {}
