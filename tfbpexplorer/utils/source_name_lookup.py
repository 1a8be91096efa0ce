"""Display labels for the binding and perturbation response data sources."""

from enum import Enum
from typing import Literal


class BindingSource(str, Enum):
    harbison_chip = "ChIP-chip"
    chipexo_pugh_allevents = "ChIP-exo"
    brent_nf_cc = "Calling Cards"


class PerturbationSource(str, Enum):
    mcisaac_oe = "Overexpression"
    kemmeren_tfko = "2014 TFKO"
    hu_reimann_tfko = "2007 TFKO"
    hahn_degron = "Degron"


_SOURCE_ENUMS: dict[str, type[Enum]] = {
    "binding": BindingSource,
    "perturbation_response": PerturbationSource,
}


def get_source_name_dict(
    datatype: Literal["binding", "perturbation_response"] | None = None,
    reverse: bool = False,
) -> dict[str, str]:
    """
    Map source ids to display labels.

    :param datatype: ``"binding"`` or ``"perturbation_response"`` to restrict the
        mapping to one kind of source; ``None`` returns both.
    :param reverse: Map labels back to source ids instead.
    :return: ``{source_id: label}``, binding sources first.
    :raises ValueError: If *datatype* is not recognized.

    :example:

        >>> get_source_name_dict("binding")["brent_nf_cc"]
        'Calling Cards'

    """
    if datatype is None:
        enums = list(_SOURCE_ENUMS.values())
    elif datatype in _SOURCE_ENUMS:
        enums = [_SOURCE_ENUMS[datatype]]
    else:
        raise ValueError(f"Invalid datatype: {datatype}")
    mapping = {member.name: member.value for enum in enums for member in enum}
    if reverse:
        return {label: source_id for source_id, label in mapping.items()}
    return mapping


def get_binding_source_label(source_id: str | None) -> str | None:
    """Display label for a binding source id; unknown ids are returned unchanged."""
    if not source_id:
        return source_id
    return get_source_name_dict("binding").get(source_id, source_id)


def get_perturbation_source_label(source_id: str | None) -> str | None:
    """Display label for a perturbation source id; unknown ids are returned unchanged."""
    if not source_id:
        return source_id
    return get_source_name_dict("perturbation_response").get(source_id, source_id)
