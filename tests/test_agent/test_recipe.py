"""Tests for recipe synthesis."""

import pytest

from burrow.agent.recipe import (
    SSHD_FOREGROUND,
    foreground_directives,
    installs_ssh_server,
    parse_recipe,
    synthesize_from_image,
    synthesize_from_recipe,
    validate_public_key,
)
from burrow.errors import InvalidKeyMaterial, RecipeSynthesisFailed


KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAACAQCx burrow-dev1"


def _keywords(recipe):
    return [ins.keyword for ins in parse_recipe(recipe) if ins.keyword]


class TestParseRecipe:
    """Test the instruction parser."""

    def test_comments_and_blank_lines_have_no_keyword(self):
        instructions = parse_recipe("# CMD [\"nope\"]\n\nFROM alpine\n")
        assert [ins.keyword for ins in instructions] == [None, None, "FROM"]

    def test_continuation_lines_join_into_one_instruction(self):
        recipe = "FROM ubuntu\nRUN apt-get update \\\n    && apt-get install -y \\\n    openssh-server\n"
        instructions = [ins for ins in parse_recipe(recipe) if ins.keyword]

        assert len(instructions) == 2
        assert instructions[1].keyword == "RUN"
        assert "openssh-server" in instructions[1].arguments
        assert instructions[1].text.count("\n") == 2

    def test_comment_inside_continuation_is_skipped(self):
        recipe = "FROM ubuntu\nRUN echo one \\\n# CMD inside\n    && echo two\n"
        assert _keywords(recipe) == ["FROM", "RUN"]

    def test_dangling_continuation_fails(self):
        with pytest.raises(RecipeSynthesisFailed):
            parse_recipe("FROM ubuntu\nRUN echo hi \\\n")

    def test_heredoc_body_is_part_of_instruction(self):
        recipe = "FROM ubuntu\nRUN <<EOF\nCMD not-an-instruction\nEOF\nUSER dev\n"
        assert _keywords(recipe) == ["FROM", "RUN", "USER"]

    def test_heredoc_marker_outside_run_copy_add_is_plain_text(self):
        recipe = 'FROM ubuntu\nLABEL note="a<<B"\nCMD ["bash"]\n'
        assert _keywords(recipe) == ["FROM", "LABEL", "CMD"]

    def test_copy_heredoc_body_is_part_of_instruction(self):
        recipe = "FROM ubuntu\nCOPY <<EOF /etc/motd\nUSER nobody\nEOF\n"
        assert _keywords(recipe) == ["FROM", "COPY"]

    def test_unterminated_heredoc_fails(self):
        with pytest.raises(RecipeSynthesisFailed):
            parse_recipe("FROM ubuntu\nRUN <<EOF\necho hi\n")

    def test_escape_directive(self):
        recipe = "# escape=`\nFROM mcr.microsoft.com/windows\nRUN dir `\n    c:\\\n"
        assert _keywords(recipe) == ["FROM", "RUN"]

    def test_keywords_are_case_insensitive(self):
        assert _keywords("from alpine\ncmd [\"sh\"]\n") == ["FROM", "CMD"]


class TestSynthesizeFromImage:
    """Test recipes generated for a base image."""

    def test_base_image_recipe(self):
        recipe = synthesize_from_image("ubuntu:22.04", KEY)
        instructions = parse_recipe(recipe)

        assert instructions[0].text == "FROM ubuntu:22.04"
        assert recipe.count(SSHD_FOREGROUND) == 1
        assert recipe.count(KEY) == 1
        assert len(foreground_directives(instructions)) == 1
        assert "EXPOSE 22" in recipe

    def test_installs_dev_packages(self):
        recipe = synthesize_from_image("debian:12", KEY)
        assert "openssh-server sudo curl git vim" in recipe
        assert "/var/run/sshd" in recipe
        assert "PermitRootLogin prohibit-password" in recipe
        assert "PubkeyAuthentication yes" in recipe

    def test_key_written_with_strict_permissions(self):
        recipe = synthesize_from_image("debian:12", KEY)
        assert f"echo '{KEY}' > /root/.ssh/authorized_keys" in recipe
        assert "chmod 700 /root/.ssh" in recipe
        assert "chmod 600 /root/.ssh/authorized_keys" in recipe

    def test_deterministic(self):
        assert synthesize_from_image("alpine", KEY) == synthesize_from_image("alpine", KEY)

    @pytest.mark.parametrize("image", ["", "   ", "ubuntu 22.04"])
    def test_invalid_image_reference(self, image):
        with pytest.raises(RecipeSynthesisFailed):
            synthesize_from_image(image, KEY)


class TestSynthesizeFromRecipe:
    """Test SSH injection into user recipes."""

    def test_recipe_with_ssh_gets_trust_only(self):
        recipe = (
            "FROM ubuntu:22.04\n"
            "RUN apt-get update && apt-get install -y openssh-server\n"
            'CMD ["/usr/sbin/sshd", "-D", "-e"]\n'
        )
        result = synthesize_from_recipe(recipe, KEY)

        assert result.count("apt-get install") == 1
        assert result.count(KEY) == 1
        assert 'CMD ["/usr/sbin/sshd", "-D", "-e"]' in result
        assert SSHD_FOREGROUND not in result

    def test_recipe_with_ssh_but_no_foreground_gets_sshd(self):
        recipe = "FROM alpine\nRUN apk add --no-cache openssh\n"
        result = synthesize_from_recipe(recipe, KEY)

        assert installs_ssh_server(parse_recipe(recipe))
        assert result.count(SSHD_FOREGROUND) == 1
        assert "apt-get" not in result

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_recipe_without_ssh_has_single_foreground(self, count):
        recipe = "FROM node:20\nWORKDIR /app\n" + "".join(
            f'CMD ["node", "server{i}.js"]\nENTRYPOINT ["tini", "--"]\n' for i in range(count)
        )
        result = synthesize_from_recipe(recipe, KEY)
        directives = foreground_directives(parse_recipe(result))

        assert len(directives) == 1
        assert directives[0].text == SSHD_FOREGROUND
        assert result.count("openssh-server") == 1
        assert "EXPOSE 22" in result

    def test_commented_foreground_is_left_alone(self):
        recipe = "FROM python:3.12\n# CMD [\"python\"]\n"
        result = synthesize_from_recipe(recipe, KEY)
        assert '# CMD ["python"]' in result

    def test_commented_ssh_install_does_not_count(self):
        recipe = "FROM ubuntu\n# RUN apt-get install -y openssh-server\n"
        assert not installs_ssh_server(parse_recipe(recipe))
        result = synthesize_from_recipe(recipe, KEY)
        assert result.count(SSHD_FOREGROUND) == 1

    def test_package_name_must_match_exactly(self):
        recipe = "FROM ubuntu\nRUN apt-get install -y openssh-client\n"
        assert not installs_ssh_server(parse_recipe(recipe))

    def test_multiline_cmd_removed_entirely(self):
        recipe = 'FROM ubuntu\nCMD ["python", \\\n     "app.py"]\n'
        result = synthesize_from_recipe(recipe, KEY)
        assert "app.py" not in result

    def test_user_switch_gets_root_back(self):
        recipe = "FROM ubuntu\nUSER dev\n"
        result = synthesize_from_recipe(recipe, KEY)
        tail = result.split("USER dev", 1)[1]
        assert "USER root" in tail
        assert tail.index("USER root") < tail.index("authorized_keys")

    def test_recipe_with_ssh_keeps_its_user_for_own_cmd(self):
        recipe = (
            "FROM ubuntu:22.04\n"
            "RUN apt-get install -y openssh-server\n"
            "USER builder\n"
            "USER dev\n"
            'CMD ["/home/dev/start.sh"]\n'
        )
        result = synthesize_from_recipe(recipe, KEY)
        tail = result.split('CMD ["/home/dev/start.sh"]', 1)[1]

        assert tail.index("USER root") < tail.index("authorized_keys") < tail.index("USER dev")
        assert tail.rstrip().endswith("USER dev")

    def test_recipe_with_ssh_and_no_cmd_stays_root_for_sshd(self):
        recipe = "FROM alpine\nRUN apk add openssh\nUSER dev\n"
        result = synthesize_from_recipe(recipe, KEY)
        tail = result.split("USER dev", 1)[1]

        assert "USER dev" not in tail
        assert tail.rstrip().endswith(SSHD_FOREGROUND)

    def test_no_user_switch_without_user_instruction(self):
        assert "USER root" not in synthesize_from_recipe("FROM ubuntu\n", KEY)

    def test_missing_from_fails(self):
        with pytest.raises(RecipeSynthesisFailed):
            synthesize_from_recipe("RUN echo hi\n", KEY)

    def test_original_steps_preserved(self):
        recipe = "FROM ubuntu\nRUN echo build\nCOPY . /src\n"
        result = synthesize_from_recipe(recipe, KEY)
        assert result.startswith("FROM ubuntu\nRUN echo build\nCOPY . /src\n")


class TestPublicKeyValidation:
    """Test key material checks."""

    @pytest.mark.parametrize("key", ["", "  ", "ssh-rsa AAA\nCMD evil", "ssh-rsa AAA\r", "ssh-rsa AAA' x"])
    def test_rejects_unsafe_keys(self, key):
        with pytest.raises(InvalidKeyMaterial):
            validate_public_key(key)

    def test_rejected_before_recipe_is_produced(self):
        with pytest.raises(InvalidKeyMaterial):
            synthesize_from_image("ubuntu", "ssh-rsa AAA\nRUN rm -rf /")
        with pytest.raises(InvalidKeyMaterial):
            synthesize_from_recipe("FROM ubuntu\n", "")

    def test_accepts_normal_key(self):
        assert validate_public_key(KEY) == KEY
