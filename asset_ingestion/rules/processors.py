"""
Concrete rule processors.

One class per RuleType.  Each pairs a frozen config dataclass (produced by
``validate_config``) with a pure ``process``.  Config keys are accepted in
snake_case and in the legacy camelCase spelling used by older rule records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from asset_ingestion.domain.types import RuleType
from asset_ingestion.rules.base import (
    ConfigValidation,
    ProcessingContext,
    ProcessingResult,
    config_value,
    passthrough_non_string,
)

DEFAULT_TRIM_CHARS = " \t\n\r"


# =============================================================================
# TRIM
# =============================================================================


@dataclass(frozen=True)
class TrimConfig:
    sides: str = "both"
    custom_chars: str = DEFAULT_TRIM_CHARS


class TrimProcessor:
    """Strip characters from one or both ends of a string."""

    _SIDES = ("both", "left", "right")

    @property
    def rule_type(self) -> str:
        return RuleType.TRIM.value

    @property
    def description(self) -> str:
        return "Remove leading and/or trailing characters"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        sides = config_value(raw, "sides", None, "both")
        chars = config_value(raw, "custom_chars", "customChars", DEFAULT_TRIM_CHARS)
        if not isinstance(chars, str):
            return ConfigValidation.invalid("custom_chars must be a string")
        if sides not in self._SIDES:
            sides = "both"
        return ConfigValidation.valid(TrimConfig(sides=sides, custom_chars=chars))

    def process(self, value: Any, config: TrimConfig, context: ProcessingContext) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "Trim processor", context)

        chars = config.custom_chars or None
        if config.sides == "left":
            trimmed = value.lstrip(chars)
        elif config.sides == "right":
            trimmed = value.rstrip(chars)
        else:
            trimmed = value.strip(chars)

        return ProcessingResult(
            ok=True,
            value=trimmed,
            metadata={
                "original_length": len(value),
                "trimmed_length": len(trimmed),
                "characters_removed": len(value) - len(trimmed),
                "operation": f"trim-{config.sides}",
            },
        )


# =============================================================================
# REGEX_REPLACE
# =============================================================================


_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_IGNORED_FLAGS = frozenset("uy")
_TEMPLATE_TOKEN = re.compile(r"\$(\$|&|\d{1,2})")


@dataclass(frozen=True)
class RegexReplaceConfig:
    pattern: re.Pattern
    replacement: tuple[str | int, ...]  # literal chunks and group numbers
    replace_all: bool = True


def _parse_template(template: str, group_count: int) -> tuple[str | int, ...] | str:
    """Split a ``$1`` / ``$&`` / ``$$`` replacement template into parts.

    Returns an error message instead of parts when a group is out of range.
    """
    parts: list[str | int] = []
    pos = 0
    for m in _TEMPLATE_TOKEN.finditer(template):
        parts.append(template[pos:m.start()])
        token = m.group(1)
        if token == "$":
            parts.append("$")
        elif token == "&":
            parts.append(0)
        else:
            group = int(token)
            if group > group_count:
                return f"replacement references group ${group} but pattern has {group_count}"
            parts.append(group)
        pos = m.end()
    parts.append(template[pos:])
    return tuple(p for p in parts if p != "")


class RegexReplaceProcessor:
    """Replace regular expression matches within a string."""

    @property
    def rule_type(self) -> str:
        return RuleType.REGEX_REPLACE.value

    @property
    def description(self) -> str:
        return "Replace text matching a regular expression"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        pattern = raw.get("pattern")
        replacement = raw.get("replacement")
        flags = raw.get("flags", "g")

        errors: list[str] = []
        if not isinstance(pattern, str):
            errors.append("pattern must be a string")
        if not isinstance(replacement, str):
            errors.append("replacement must be a string")
        if not isinstance(flags, str):
            errors.append("flags must be a string")
        if errors:
            return ConfigValidation.invalid(*errors)

        re_flags = 0
        for flag in flags:
            if flag == "g" or flag in _IGNORED_FLAGS:
                continue
            if flag not in _REGEX_FLAGS:
                return ConfigValidation.invalid(f"Unsupported regex flag: {flag}")
            re_flags |= _REGEX_FLAGS[flag]

        try:
            compiled = re.compile(pattern, re_flags)
        except re.error as exc:
            return ConfigValidation.invalid(f"Invalid regex pattern: {exc}")

        parts = _parse_template(replacement, compiled.groups)
        if isinstance(parts, str):
            return ConfigValidation.invalid(parts)

        return ConfigValidation.valid(
            RegexReplaceConfig(pattern=compiled, replacement=parts, replace_all="g" in flags)
        )

    def process(
        self, value: Any, config: RegexReplaceConfig, context: ProcessingContext
    ) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "RegexReplace processor", context)

        def _expand(match: re.Match) -> str:
            return "".join(
                (match.group(p) or "") if isinstance(p, int) else p
                for p in config.replacement
            )

        replaced, count = config.pattern.subn(
            _expand, value, count=0 if config.replace_all else 1
        )
        return ProcessingResult(
            ok=True,
            value=replaced,
            metadata={"match_count": count, "pattern": config.pattern.pattern},
        )


# =============================================================================
# EXACT_REPLACE
# =============================================================================


@dataclass(frozen=True)
class ExactReplaceConfig:
    replacements: tuple[tuple[str, str], ...]  # longest "from" first
    case_sensitive: bool = True


class ExactReplaceProcessor:
    """Replace exact substrings, longest match first."""

    @property
    def rule_type(self) -> str:
        return RuleType.EXACT_REPLACE.value

    @property
    def description(self) -> str:
        return "Replace exact text values"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        replacements = raw.get("replacements")
        if not isinstance(replacements, (list, tuple)):
            return ConfigValidation.invalid("replacements must be a list")

        pairs: list[tuple[str, str]] = []
        for item in replacements:
            if not isinstance(item, Mapping):
                return ConfigValidation.invalid("Each replacement must be an object")
            frm, to = item.get("from"), item.get("to")
            if not isinstance(frm, str) or not isinstance(to, str):
                return ConfigValidation.invalid(
                    'Each replacement must have "from" and "to" string properties'
                )
            if not frm:
                return ConfigValidation.invalid('Replacement "from" must not be empty')
            pairs.append((frm, to))

        case_sensitive = config_value(raw, "case_sensitive", "caseSensitive", True)
        pairs.sort(key=lambda p: len(p[0]), reverse=True)
        return ConfigValidation.valid(
            ExactReplaceConfig(replacements=tuple(pairs), case_sensitive=bool(case_sensitive))
        )

    def process(
        self, value: Any, config: ExactReplaceConfig, context: ProcessingContext
    ) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "ExactReplace processor", context)

        result = value
        made = 0
        for frm, to in config.replacements:
            if config.case_sensitive:
                made += result.count(frm)
                result = result.replace(frm, to)
            else:
                result, n = re.subn(re.escape(frm), lambda _m, to=to: to, result, flags=re.IGNORECASE)
                made += n

        return ProcessingResult(ok=True, value=result, metadata={"replacements_made": made})


# =============================================================================
# REMOVE_DUPLICATES
# =============================================================================


@dataclass(frozen=True)
class RemoveDuplicatesConfig:
    delimiter: str
    case_sensitive: bool = False


class RemoveDuplicatesProcessor:
    """Drop repeated items from a delimited list, keeping first-seen order."""

    @property
    def rule_type(self) -> str:
        return RuleType.REMOVE_DUPLICATES.value

    @property
    def description(self) -> str:
        return "Remove duplicate entries from a delimited value"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        delimiter = raw.get("delimiter")
        if not isinstance(delimiter, str):
            return ConfigValidation.invalid("delimiter must be a string")
        if not delimiter:
            return ConfigValidation.invalid("delimiter must not be empty")
        case_sensitive = config_value(raw, "case_sensitive", "caseSensitive", False)
        return ConfigValidation.valid(
            RemoveDuplicatesConfig(delimiter=delimiter, case_sensitive=bool(case_sensitive))
        )

    def process(
        self, value: Any, config: RemoveDuplicatesConfig, context: ProcessingContext
    ) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "RemoveDuplicates processor", context)

        items = [item.strip() for item in value.split(config.delimiter)]
        items = [item for item in items if item]

        seen: set[str] = set()
        unique: list[str] = []
        for item in items:
            key = item if config.case_sensitive else item.casefold()
            if key in seen:
                continue
            seen.add(key)
            unique.append(item)

        return ProcessingResult(
            ok=True,
            value=config.delimiter.join(unique),
            metadata={
                "original_count": len(items),
                "unique_count": len(unique),
                "duplicates_removed": len(items) - len(unique),
            },
        )


# =============================================================================
# TO_UPPERCASE
# =============================================================================


class UppercaseProcessor:
    """Uppercase a string.  Takes no configuration."""

    @property
    def rule_type(self) -> str:
        return RuleType.TO_UPPERCASE.value

    @property
    def description(self) -> str:
        return "Convert text to uppercase"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        return ConfigValidation.valid(None)

    def process(self, value: Any, config: None, context: ProcessingContext) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "Uppercase processor", context)
        return ProcessingResult(ok=True, value=value.upper())


# =============================================================================
# SPECIAL_CHAR_REMOVE
# =============================================================================


@dataclass(frozen=True)
class SpecialCharConfig:
    keep_chars: str = ""
    replace_with: str = ""
    preserve_spaces: bool = True


class SpecialCharRemoverProcessor:
    """Remove characters that are not alphanumeric (or explicitly kept)."""

    @property
    def rule_type(self) -> str:
        return RuleType.SPECIAL_CHAR_REMOVE.value

    @property
    def description(self) -> str:
        return "Remove special characters"

    def validate_config(self, raw: Mapping[str, Any]) -> ConfigValidation:
        keep = config_value(raw, "keep_chars", "keepChars", "")
        replace_with = config_value(raw, "replace_with", "replaceWith", "")
        preserve = config_value(raw, "preserve_spaces", "preserveSpaces", True)

        errors: list[str] = []
        if not isinstance(keep, str):
            errors.append("keep_chars must be a string")
        if not isinstance(replace_with, str):
            errors.append("replace_with must be a string")
        if not isinstance(preserve, bool):
            errors.append("preserve_spaces must be a boolean")
        if errors:
            return ConfigValidation.invalid(*errors)
        return ConfigValidation.valid(
            SpecialCharConfig(keep_chars=keep, replace_with=replace_with, preserve_spaces=preserve)
        )

    def process(
        self, value: Any, config: SpecialCharConfig, context: ProcessingContext
    ) -> ProcessingResult:
        if not isinstance(value, str):
            return passthrough_non_string(value, "SpecialCharRemover processor", context)

        kept: list[str] = []
        removed = 0
        for ch in value:
            if ch.isalnum() or ch in config.keep_chars or (config.preserve_spaces and ch.isspace()):
                kept.append(ch)
            else:
                kept.append(config.replace_with)
                removed += 1
        return ProcessingResult(ok=True, value="".join(kept), metadata={"characters_removed": removed})


# All built-in processor classes, in RuleType declaration order.
BUILTIN_PROCESSORS: tuple[Callable[[], Any], ...] = (
    TrimProcessor,
    RegexReplaceProcessor,
    ExactReplaceProcessor,
    RemoveDuplicatesProcessor,
    UppercaseProcessor,
    SpecialCharRemoverProcessor,
)
