"""
Content-addressed identity for stored objects.

Every stored object is a plain document carrying a ``$type$`` key. The identity
of a document is the SHA-256 of a canonical JSON encoding of its type plus the
fields registered for that type in ``ID_FIELDS``. Two documents that agree on
those fields resolve to the same id, which is what makes repeated writes land
on the same record.
"""

import hashlib
import json
from typing import Any, Dict, Mapping

TYPE_KEY = '$type$'

# Identity fields per object type
ID_FIELDS = {
    'Keyword': ('term', ),
    'Subject': ('keywords', ),
    'ProposalConfig': ('owner', ),
    'Proposal': ('conversation_id', 'past_subject_id', 'current_subject_id'),
    'InteractionRecord': ('user_id', 'target_id', 'action'),
    'InteractionResponse': ('record_id', ),
}

# Identity fields holding sets; order must not change the id
SET_VALUED_FIELDS = {
    'Subject': ('keywords', ),
}


class IdentityError(ValueError):
    """Raised when a document cannot be given an identity."""
    pass


def _canonical(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def canonical_json(fields: Mapping[str, Any]) -> str:
    """Encode fields with sorted keys, compact separators and sorted sets."""
    return json.dumps(_canonical(fields), sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def hash_fields(fields: Mapping[str, Any]) -> str:
    """SHA-256 hex digest of the canonical encoding of ``fields``."""
    return hashlib.sha256(canonical_json(fields).encode('utf-8')).hexdigest()


def identity_fields(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract the identity subset of a document.

    Args:
        document: Document with a registered ``$type$``

    Returns:
        Dict with ``$type$`` and the identity fields (missing optional fields as None)

    Raises:
        IdentityError: If the type is missing or not registered
    """
    type_name = document.get(TYPE_KEY)
    if type_name not in ID_FIELDS:
        raise IdentityError(f'Unknown object type: {type_name!r}')

    fields = {TYPE_KEY: type_name}
    for name in ID_FIELDS[type_name]:
        value = document.get(name)
        if name in SET_VALUED_FIELDS.get(type_name, ()) and value is not None:
            value = sorted(set(value))
        fields[name] = value
    return fields


def compute_id(fields: Mapping[str, Any]) -> str:
    """Deterministic id from identity fields. Pure, no I/O."""
    if TYPE_KEY not in fields:
        raise IdentityError('Identity fields must include $type$')
    return hash_fields(identity_fields(fields))


def version_hash(document: Mapping[str, Any]) -> str:
    """Hash over the whole document; changes whenever any field changes."""
    return hash_fields(document)
