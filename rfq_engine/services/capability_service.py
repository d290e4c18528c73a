"""
Capability extraction — derives the production services a job needs
from its specification. Pure functions, no I/O.
"""

from __future__ import annotations

from typing import Iterable, Optional

from rfq_engine.models.enums import ServiceTag
from rfq_engine.models.schemas import JobSpec, ServiceRequirement

# Substring → service, matched against the lower-cased finishing text
_FINISHING_KEYWORDS: list[tuple[tuple[str, ...], ServiceTag]] = [
    (("foil",), ServiceTag.FOIL_STAMPING),
    (("emboss",), ServiceTag.EMBOSSING),
    (("die cut", "die-cut"), ServiceTag.DIE_CUTTING),
    (("lamination", "laminate"), ServiceTag.LAMINATION),
    (("score", "scoring"), ServiceTag.SCORING),
    (("fold",), ServiceTag.FOLDING),
]


def extract_required_services(spec: Optional[JobSpec]) -> ServiceRequirement:
    """
    Return the set of services needed to produce a job.

    Never fails: missing or unrecognised fields contribute nothing, and
    printing is always required.
    """
    services: set[ServiceTag] = {ServiceTag.PRINTING}
    if spec is None:
        return ServiceRequirement(services=frozenset(services))

    finishing = (spec.finishing or "").lower()
    for keywords, tag in _FINISHING_KEYWORDS:
        if any(k in finishing for k in keywords):
            services.add(tag)

    if spec.binding_style and spec.binding_style.strip():
        services.add(ServiceTag.BINDING)

    coating = (spec.coating or "").lower()
    if "uv" in coating:
        services.add(ServiceTag.UV_COATING)
    elif "lamination" in coating:
        services.add(ServiceTag.LAMINATION)

    return ServiceRequirement(services=frozenset(services))


def service_display_name(service: ServiceTag | str) -> str:
    """Human-readable name of a service tag; unknown strings pass through."""
    try:
        return ServiceTag(service).display_name
    except ValueError:
        return str(service)


def describe_services(services: ServiceRequirement | Iterable[ServiceTag]) -> str:
    """Comma-joined display names, e.g. 'Printing, Binding, Foil Stamping'."""
    if isinstance(services, ServiceRequirement):
        tags = services.ordered()
    else:
        tags = [tag for tag in ServiceTag if tag in set(services)]
    return ", ".join(tag.display_name for tag in tags)
