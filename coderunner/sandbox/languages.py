"""Language profiles: which image to use and how to build and run a file.

Profiles are registered once at start-up and never mutated afterwards.
Commands are argument vectors executed directly inside the container, with
no shell in between. A profile that derives its file name from the source
(Java) uses ``{entry}`` placeholders that ``resolve`` fills in.
"""

import re
from dataclasses import dataclass

from coderunner.sandbox.errors import InvalidSourceError, UnsupportedLanguageError

ENTRY_PLACEHOLDER = "{entry}"

# Not a parser. Matches the first ``public class Name`` anywhere in the text,
# including inside comments and string literals, and ignores modifiers such
# as ``public final class``. Sources with several public classes resolve to
# whichever one appears first.
_PUBLIC_CLASS_PATTERN = re.compile(r"\bpublic\s+class\s+(\w+)")


def find_public_class(source: str) -> str | None:
    """Return the name of the first ``public class`` declared in ``source``."""
    match = _PUBLIC_CLASS_PATTERN.search(source)
    return match.group(1) if match else None


@dataclass(frozen=True, slots=True)
class LanguageProfile:
    """Build/run contract for one language."""

    language: str
    image: str
    file_name: str
    run_command: tuple[str, ...]
    compile_command: tuple[str, ...] | None = None
    entry_point_missing: str | None = None

    def __post_init__(self) -> None:
        if not self.run_command:
            raise ValueError(f"Language '{self.language}' needs a run command")
        if self.compile_command is not None and not self.compile_command:
            raise ValueError(f"Language '{self.language}' has an empty compile command")

    @property
    def needs_entry_point(self) -> bool:
        return ENTRY_PLACEHOLDER in self.file_name


@dataclass(frozen=True, slots=True)
class ResolvedProfile:
    """A profile with every placeholder filled in for one submission."""

    language: str
    image: str
    file_name: str
    run_command: tuple[str, ...]
    compile_command: tuple[str, ...] | None = None


def _fill(parts: tuple[str, ...], entry: str) -> tuple[str, ...]:
    return tuple(part.replace(ENTRY_PLACEHOLDER, entry) for part in parts)


class LanguageRegistry:
    def __init__(self, profiles: list[LanguageProfile] | None = None) -> None:
        self._profiles: dict[str, LanguageProfile] = {}
        for profile in profiles or []:
            self.register(profile)

    def register(self, profile: LanguageProfile) -> None:
        if profile.language in self._profiles:
            raise ValueError(f"Language '{profile.language}' is already registered")
        self._profiles[profile.language] = profile

    def languages(self) -> list[str]:
        return list(self._profiles)

    def get(self, language: str) -> LanguageProfile:
        profile = self._profiles.get(language)
        if profile is None:
            raise UnsupportedLanguageError(f"Unsupported language: {language}", language=language)
        return profile

    def __contains__(self, language: object) -> bool:
        return language in self._profiles

    def resolve(self, language: str, source: str) -> ResolvedProfile:
        """Resolve ``language`` for ``source``.

        Raises:
            UnsupportedLanguageError: The language is not registered.
            InvalidSourceError: The profile needs an entry point and the
                source declares none.
        """
        profile = self.get(language)
        if not profile.needs_entry_point:
            return ResolvedProfile(
                language=profile.language,
                image=profile.image,
                file_name=profile.file_name,
                run_command=profile.run_command,
                compile_command=profile.compile_command,
            )

        entry = find_public_class(source)
        if entry is None:
            raise InvalidSourceError(
                profile.entry_point_missing or f"{language} source is missing its entry point",
                language=language,
            )
        return ResolvedProfile(
            language=profile.language,
            image=profile.image,
            file_name=profile.file_name.replace(ENTRY_PLACEHOLDER, entry),
            run_command=_fill(profile.run_command, entry),
            compile_command=_fill(profile.compile_command, entry) if profile.compile_command else None,
        )


def default_profiles(images: dict[str, str]) -> list[LanguageProfile]:
    """Built-in profiles. ``images`` maps language id to image reference."""
    return [
        LanguageProfile(
            language="javascript",
            image=images["javascript"],
            file_name="code.js",
            run_command=("node", "code.js"),
        ),
        LanguageProfile(
            language="c",
            image=images["c"],
            file_name="code.c",
            compile_command=("gcc", "code.c", "-o", "program", "-std=c11"),
            run_command=("./program",),
        ),
        LanguageProfile(
            language="cpp",
            image=images["cpp"],
            file_name="code.cpp",
            compile_command=("g++", "code.cpp", "-o", "program", "-std=c++17"),
            run_command=("./program",),
        ),
        LanguageProfile(
            language="java",
            image=images["java"],
            file_name="{entry}.java",
            compile_command=("javac", "{entry}.java"),
            run_command=("java", "{entry}"),
            entry_point_missing="Java code must contain a public class",
        ),
        LanguageProfile(
            language="python",
            image=images["python"],
            file_name="code.py",
            run_command=("python3", "code.py"),
        ),
    ]


def build_registry(images: dict[str, str]) -> LanguageRegistry:
    return LanguageRegistry(default_profiles(images))
