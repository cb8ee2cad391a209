"""
Renovation work ontology — the closed set of categories and item flags.

The enumeration order of ``Category`` is part of observable behaviour: the
keyword scorer walks categories in this order and keeps the first one on a
tie.  Do not reorder members.
"""
from __future__ import annotations

from enum import Enum


class Category(str, Enum):
    """Renovation work category assigned to every quote line."""

    DEMOLIZIONI_SMALTIMENTI = "demolizioni_smaltimenti"
    IMPIANTO_ELETTRICO = "impianto_elettrico"
    IMPIANTO_IDRICO_SANITARIO = "impianto_idrico_sanitario"
    IMPIANTO_TERMICO_RISCALDAMENTO_CALDAIA = "impianto_termico_riscaldamento_caldaia"
    GAS = "gas"
    PAVIMENTI_RIVESTIMENTI_MASSETTI = "pavimenti_rivestimenti_massetti"
    BAGNO_FORNITURE_SANITARI_RUBINETTERIA = "bagno_forniture_sanitari_rubinetteria"
    CUCINA_LAVORI_IDRICI_ELETTRICI = "cucina_lavori_idrici_elettrici"
    PORTE_INTERNE = "porte_interne"
    SERRAMENTI_INFISSI = "serramenti_infissi"
    PITTURA_CARTONGESSO_CONTROSSOFFITTI = "pittura_cartongesso_controssoffitti"
    PRATICHE_TECNICHE_PERMESSI_DICO = "pratiche_tecniche_permessi_dico"
    CONDIZIONAMENTO_VENTILAZIONE = "condizionamento_ventilazione"
    IMPIANTO_FOTOVOLTAICO_PANNELLI = "impianto_fotovoltaico_pannelli"
    BATTERIA_ACCUMULO = "batteria_accumulo"
    INVERTER_FOTOVOLTAICO = "inverter_fotovoltaico"
    PRATICHE_AUTORIZZATIVE_FOTOVOLTAICO_GSE = "pratiche_autorizzative_fotovoltaico_gse"
    POMPE_DI_CALORE = "pompe_di_calore"
    ALTRI_EXTRA = "altri_extra"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


class ItemFlag(str, Enum):
    """Information gap or risk detected on a single line item."""

    MARCA_MATERIALE_MANCANTE = "marca_materiale_mancante"
    DICO_MANCANTE = "dico_mancante"
    SMALTIMENTO_NON_MENZIONATO = "smaltimento_non_menzionato"
    QUANTITA_NON_CHIARA = "quantita_non_chiara"
    ESCLUSIONI_PRESENTI = "esclusioni_presenti"
    GARANZIA_NON_SPECIFICATA = "garanzia_non_specificata"
    PRATICHE_AUTORIZZATIVE_NON_MENZIONATE = "pratiche_autorizzative_non_menzionate"

    def __str__(self) -> str:
        return self.value


ALL_CATEGORIES: tuple[Category, ...] = tuple(Category)
ALL_FLAGS: tuple[ItemFlag, ...] = tuple(ItemFlag)

_CATEGORY_VALUES = frozenset(c.value for c in Category)


def is_category(candidate: object) -> bool:
    """True when ``candidate`` is a Category or one of its string ids."""
    if isinstance(candidate, Category):
        return True
    return isinstance(candidate, str) and candidate in _CATEGORY_VALUES
