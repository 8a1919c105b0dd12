"""
Keyword registry and field alias table.

Both are plain immutable data handed to the segmenter, classifier and field
extractor, so a new carrier dialect only needs a new standards table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional, Tuple


class MessageKind(str, Enum):
    TERM_ATTEMPT = "termAttempt"
    ORIG_ATTEMPT = "origAttempt"
    ANSWER = "answer"
    RELEASE = "release"
    DIRECT_SIGNAL_REPORTING = "directSignalReporting"
    SUBJECT_SIGNAL = "subjectSignal"
    CC_OPEN = "ccOpen"
    CC_CLOSE = "ccClose"
    SMS_MESSAGE = "smsMessage"
    MMS_MESSAGE = "mmsMessage"


# Not part of any standards table; always recognized.
LITERAL_KEYWORDS: Tuple[Tuple[str, MessageKind], ...] = (
    ("smsmessage", MessageKind.SMS_MESSAGE),
    ("mmsmessage", MessageKind.MMS_MESSAGE),
)


@dataclass(frozen=True)
class MessageKindDescriptor:
    id: MessageKind
    keywords: Tuple[str, ...]
    display_name: str = ""
    description: str = ""


@dataclass(frozen=True)
class TypeRegistry:
    descriptors: Tuple[MessageKindDescriptor, ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Iterable[str]]]) -> "TypeRegistry":
        return cls(
            descriptors=tuple(
                MessageKindDescriptor(id=MessageKind(kind), keywords=tuple(k.strip().lower() for k in keywords))
                for kind, keywords in pairs
            )
        )

    @property
    def keywords(self) -> FrozenSet[str]:
        words = {kw for d in self.descriptors for kw in d.keywords}
        words.update(kw for kw, _kind in LITERAL_KEYWORDS)
        return frozenset(words)

    def descriptor(self, kind: MessageKind) -> Optional[MessageKindDescriptor]:
        return next((d for d in self.descriptors if d.id == kind), None)


@dataclass(frozen=True)
class FieldAliasTable:
    aliases: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "FieldAliasTable":
        return cls(aliases={name: tuple(values) for name, values in mapping.items()})

    def aliases_for(self, name: str, default: Optional[Iterable[str]] = None) -> Tuple[str, ...]:
        values = self.aliases.get(name)
        if values:
            return values
        if default:
            return tuple(default)
        return (name,)
