# src/hrtengine/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Tuple

# Timestamps are integer milliseconds since the Unix epoch.
# PK curve time is kept in DAYS internally.
DAY_MS = 24 * 60 * 60 * 1000


class Hormone(str, Enum):
    CHOLESTEROL = "Cholesterol"
    TESTOSTERONE = "Testosterone"
    DIHYDROTESTOSTERONE = "Dihydrotestosterone"
    DEHYDROEPIANDROSTERONE = "Dehydroepiandrosterone"
    ESTRONE = "Estrone"
    ESTRADIOL = "Estradiol"
    ESTRIOL = "Estriol"
    ESTETROL = "Estetrol"
    PROGESTERONE = "Progesterone"
    ALDOSTERONE = "Aldosterone"
    ANDROSTENEDIONE = "Androstenedione"
    CORTISOL = "Cortisol"
    GONADORELIN = "Gonadorelin"
    FSH = "Follicle-stimulating hormone"
    LH = "Luteinising hormone"
    TSH = "Thyroid-stimulating hormone"
    SHBG = "Sex hormone-binding globulin"
    PROLACTIN = "Prolactin"
    THYROXINE = "Thyroxine"
    TRIIODOTHYRONINE = "Triiodothyronine"
    VITAMIN_D3 = "Vitamin D3"
    VITAMIN_B12 = "Vitamin B12"


class UnitKind(str, Enum):
    MASS = "g"
    MOLAR = "mol"
    VOLUME = "L"


class EsterModel(str, Enum):
    """PK model identity for an injectable ester or a delivery form."""
    EB_IM = "EB im"
    EV_IM = "EV im"
    EEN_IM = "EEn im"
    EC_IM = "EC im"
    EUN_IM = "EUn im"
    EUN_CASUBQ = "EUn casubq"
    PATCH_TW = "patch tw"
    PATCH_OW = "patch ow"


class InjectableEster(str, Enum):
    BENZOATE = "Estradiol Benzoate"
    CYPIONATE = "Estradiol Cypionate"
    ENANTHATE = "Estradiol Enanthate"
    UNDECYLATE = "Estradiol Undecylate"
    VALERATE = "Estradiol Valerate"
    POLYESTRADIOL_PHOSPHATE = "Polyestradiol Phosphate"


class RegimenKind(str, Enum):
    INJECTABLE_ESTRADIOL = "injectableEstradiol"
    ORAL_ESTRADIOL = "oralEstradiol"
    ANTIANDROGEN = "antiandrogen"
    PROGESTERONE = "progesterone"


# Polyestradiol phosphate has no fitted PK model.
ESTER_MODELS: Mapping[InjectableEster, Optional[EsterModel]] = MappingProxyType({
    InjectableEster.BENZOATE: EsterModel.EB_IM,
    InjectableEster.VALERATE: EsterModel.EV_IM,
    InjectableEster.ENANTHATE: EsterModel.EEN_IM,
    InjectableEster.CYPIONATE: EsterModel.EC_IM,
    InjectableEster.UNDECYLATE: EsterModel.EUN_IM,
    InjectableEster.POLYESTRADIOL_PHOSPHATE: None,
})


def model_for(medication: str) -> Optional[EsterModel]:
    """
    Resolve a medication name to its PK model.

    Accepts an injectable ester name ("Estradiol Valerate") or a model key
    ("EV im"). Anything else has no model and returns None.
    """
    try:
        return ESTER_MODELS[InjectableEster(medication)]
    except ValueError:
        pass
    try:
        return EsterModel(medication)
    except ValueError:
        return None


class PKParams(NamedTuple):
    """
    Parameters of the 3-compartment model.

    d   : dose-scaling constant (pg/mL per mg)
    k1  : release rate from the injection depot (1/day)
    k2  : transfer rate into the central compartment (1/day)
    k3  : elimination rate (1/day)
    """
    d: float
    k1: float
    k2: float
    k3: float


@dataclass(frozen=True)
class UnitSingle:
    """One side of a unit ratio: base kind plus SI prefix exponent (mL -> VOLUME, -3)."""
    kind: UnitKind
    exp: int


@dataclass(frozen=True)
class UnitRatio:
    numerator: UnitSingle
    denominator: UnitSingle


@dataclass(frozen=True)
class DoseEvent:
    """
    A single recorded administration.

    timestamp   : when it was taken (ms since epoch)
    kind        : which regimen it belongs to
    medication  : ester / drug name, e.g. "Estradiol Valerate"
    amount      : dose size in `unit`
    bonus       : an extra dose outside the schedule (ignored for next-due projection)
    """
    timestamp: int
    kind: RegimenKind
    medication: str
    amount: float
    unit: str = "mg"
    bonus: bool = False

    @property
    def model(self) -> Optional[EsterModel]:
        if self.kind is not RegimenKind.INJECTABLE_ESTRADIOL:
            return None
        return model_for(self.medication)


@dataclass
class Regimen:
    """
    A periodic dosing plan. `next_due` is written back by schedule backfill.
    """
    kind: RegimenKind
    medication: str
    amount: float
    frequency: float  # days
    unit: str = "mg"
    next_due: Optional[int] = None


class LabValue(NamedTuple):
    value: float
    unit: str


@dataclass
class BloodSample:
    """
    A lab draw.

    values     : measured analytes, e.g. {Hormone.ESTRADIOL: LabValue(180.0, "pg/mL")}
    predicted  : model prediction (pg/mL) stored when the sample was recorded
    factor     : calibration (fudge) factor; filled in by migration or user edit
    """
    timestamp: int
    values: dict[Hormone, LabValue] = field(default_factory=dict)
    predicted: Optional[float] = None
    factor: Optional[float] = None


@dataclass
class HrtRecord:
    """Snapshot of everything the engine reads for one user."""
    regimens: dict[RegimenKind, Regimen] = field(default_factory=dict)
    doses: list[DoseEvent] = field(default_factory=list)
    samples: list[BloodSample] = field(default_factory=list)
    auto_backfill: bool = True
    display_unit: Optional[str] = None


FactorPoint = Tuple[int, float]
