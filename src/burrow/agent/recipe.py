"""Build recipe (Dockerfile) synthesis.

Recipes are parsed into instructions rather than rewritten with text
substitution, so comments, continuation lines and heredoc bodies never get
mistaken for ``CMD``/``ENTRYPOINT`` or SSH installation steps.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from burrow.errors import InvalidKeyMaterial, RecipeSynthesisFailed
from burrow.utils.templates import render_template


logger = logging.getLogger(__name__)

FOREGROUND_KEYWORDS = {"CMD", "ENTRYPOINT"}
HEREDOC_KEYWORDS = {"RUN", "COPY", "ADD"}
SSHD_FOREGROUND = 'CMD ["/usr/sbin/sshd", "-D"]'
BASE_PACKAGES = ["openssh-server", "sudo", "curl", "git", "vim"]

_SSH_PACKAGE = re.compile(r"(?<![\w.-])openssh(?:-server)?(?![\w.-])")
_HEREDOC = re.compile(r"<<(-?)[\"']?([A-Za-z_][A-Za-z0-9_]*)[\"']?")
_ESCAPE_DIRECTIVE = re.compile(r"^#\s*escape\s*=\s*(\S)\s*$", re.IGNORECASE)

SSH_INSTALL_TEMPLATE = """\
RUN apt-get update && apt-get install -y {{ packages }} \\
    && rm -rf /var/lib/apt/lists/* \\
    && mkdir -p /var/run/sshd \\
    && sed -i 's/^#\\?PermitRootLogin.*/PermitRootLogin prohibit-password/' /etc/ssh/sshd_config \\
    && sed -i 's/^#\\?PubkeyAuthentication.*/PubkeyAuthentication yes/' /etc/ssh/sshd_config
"""

SSH_TRUST_TEMPLATE = """\
RUN mkdir -p /root/.ssh && chmod 700 /root/.ssh \\
    && echo '{{ public_key }}' > /root/.ssh/authorized_keys \\
    && chmod 600 /root/.ssh/authorized_keys
"""

BASE_RECIPE_TEMPLATE = """\
FROM {{ base_image }}

{{ install }}
{{ trust }}
EXPOSE 22
{{ foreground }}
"""


@dataclass(frozen=True)
class Instruction:
    """One logical recipe line.

    ``keyword`` is None for comments and blank lines. ``text`` is the original
    source, including continuation and heredoc lines.
    """
    keyword: Optional[str]
    arguments: str
    text: str


def _escape_char(lines: List[str]) -> str:
    for line in lines:
        stripped = line.strip()
        if not stripped.startswith("#"):
            break
        match = _ESCAPE_DIRECTIVE.match(stripped)
        if match:
            return match.group(1)
    return "\\"


def parse_recipe(recipe: str) -> List[Instruction]:
    """Split recipe text into instructions."""
    lines = recipe.splitlines()
    escape = _escape_char(lines)
    instructions: List[Instruction] = []
    i = 0

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        i += 1

        if not stripped or stripped.startswith("#"):
            instructions.append(Instruction(None, "", line))
            continue

        chunk = [line]
        logical = stripped
        while logical.endswith(escape):
            logical = logical[:-1]
            # Comments and blank lines inside a continuation are skipped
            while i < len(lines) and (not lines[i].strip() or lines[i].strip().startswith("#")):
                chunk.append(lines[i])
                i += 1
            if i >= len(lines):
                raise RecipeSynthesisFailed(f"Recipe ends inside a line continuation: {stripped!r}")
            chunk.append(lines[i])
            logical = f"{logical} {lines[i].strip()}"
            i += 1

        parts = logical.split(None, 1)
        keyword = parts[0].upper()
        arguments = parts[1] if len(parts) > 1 else ""

        heredocs = _HEREDOC.findall(arguments) if keyword in HEREDOC_KEYWORDS else []
        for strip_tabs, delimiter in heredocs:
            while True:
                if i >= len(lines):
                    raise RecipeSynthesisFailed(f"Unterminated heredoc {delimiter} in {keyword} instruction")
                body = lines[i]
                chunk.append(body)
                i += 1
                if (body.lstrip("\t") if strip_tabs else body) == delimiter:
                    break

        instructions.append(Instruction(keyword, arguments, "\n".join(chunk)))

    return instructions


def render_recipe(instructions: List[Instruction]) -> str:
    """Join instructions back into recipe text."""
    return "\n".join(ins.text for ins in instructions).rstrip("\n") + "\n"


def installs_ssh_server(instructions: List[Instruction]) -> bool:
    """Whether any RUN step installs an OpenSSH server package."""
    return any(
        ins.keyword == "RUN" and _SSH_PACKAGE.search(ins.arguments)
        for ins in instructions
    )


def foreground_directives(instructions: List[Instruction]) -> List[Instruction]:
    """All CMD and ENTRYPOINT instructions."""
    return [ins for ins in instructions if ins.keyword in FOREGROUND_KEYWORDS]


def validate_public_key(public_key: str) -> str:
    """Check that key material embeds as one quoted shell line."""
    if not public_key or not public_key.strip():
        raise InvalidKeyMaterial("Public key is empty")
    if "\n" in public_key or "\r" in public_key:
        raise InvalidKeyMaterial("Public key must be a single line")
    if "'" in public_key:
        raise InvalidKeyMaterial("Public key must not contain single quotes")
    return public_key


def _install_block(packages: List[str]) -> str:
    return render_template(SSH_INSTALL_TEMPLATE, packages=" ".join(packages))


def _trust_block(public_key: str) -> str:
    return render_template(SSH_TRUST_TEMPLATE, public_key=public_key)


def synthesize_from_image(base_image: str, public_key: str) -> str:
    """Recipe that turns ``base_image`` into an SSH-ready dev container."""
    validate_public_key(public_key)
    if not base_image or not base_image.strip() or any(c.isspace() for c in base_image.strip()):
        raise RecipeSynthesisFailed(f"Invalid base image reference: {base_image!r}")

    return render_template(
        BASE_RECIPE_TEMPLATE,
        base_image=base_image.strip(),
        install=_install_block(BASE_PACKAGES),
        trust=_trust_block(public_key),
        foreground=SSHD_FOREGROUND,
    )


def synthesize_from_recipe(recipe: str, public_key: str) -> str:
    """Inject SSH trust (and the SSH server when missing) into a user recipe.

    Recipes that already install an SSH server only get the trust block, and
    keep their own foreground directives. Others lose every CMD/ENTRYPOINT
    and get the full SSH setup with sshd as the sole foreground process.
    """
    validate_public_key(public_key)
    instructions = parse_recipe(recipe)

    if not any(ins.keyword == "FROM" for ins in instructions):
        raise RecipeSynthesisFailed("Recipe has no FROM instruction")

    users = [ins for ins in instructions if ins.keyword == "USER"]
    tail: List[str] = []
    if users:
        tail.append("USER root\n")

    if installs_ssh_server(instructions):
        logger.debug("Recipe already installs an SSH server; injecting key only")
        tail.append(_trust_block(public_key))
        if not foreground_directives(instructions):
            tail.append(SSHD_FOREGROUND + "\n")
        elif users:
            # The recipe's own CMD keeps running as its last user
            tail.append(f"USER {users[-1].arguments}\n")
    else:
        removed = foreground_directives(instructions)
        if removed:
            logger.debug(f"Dropping {len(removed)} foreground directive(s) in favour of sshd")
        instructions = [ins for ins in instructions if ins.keyword not in FOREGROUND_KEYWORDS]
        tail.append(_install_block(["openssh-server"]))
        tail.append(_trust_block(public_key))
        tail.append("EXPOSE 22\n")
        tail.append(SSHD_FOREGROUND + "\n")

    return render_recipe(instructions) + "\n" + "".join(tail)
