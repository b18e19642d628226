"""Allergen/Diet Inferencer.

Consolidates allergen and diet classification across consensus sources. The
combination is always the most restrictive one: allergens are unioned, and a
diet is compliant only when every source agrees it is.

Allergen claims are restricted to the nine major allergens. A claim that is
neither stated explicitly on the page nor backed by a trigger ingredient is
dropped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from verifier.pipeline.normalizer import strip_accents
from verifier.pipeline.records import DIETS, MAJOR_ALLERGENS, DietCompliance, Source

logger = logging.getLogger(__name__)

ALLERGEN_SYNONYMS: dict[str, str] = {
    "milk": "milk",
    "dairy": "milk",
    "egg": "eggs",
    "eggs": "eggs",
    "fish": "fish",
    "shellfish": "shellfish",
    "crustacean": "shellfish",
    "crustaceans": "shellfish",
    "crustacean shellfish": "shellfish",
    "tree nut": "tree_nuts",
    "tree nuts": "tree_nuts",
    "peanut": "peanuts",
    "peanuts": "peanuts",
    "wheat": "wheat",
    "soy": "soy",
    "soya": "soy",
    "soybean": "soy",
    "soybeans": "soy",
    "sesame": "sesame",
    "sesame seed": "sesame",
    "sesame seeds": "sesame",
}

# Ingredient words that imply each major allergen.
ALLERGEN_TRIGGERS: dict[str, tuple[str, ...]] = {
    "milk": (
        "milk", "milkfat", "buttermilk", "butter", "cream", "cheese", "whey", "casein",
        "caseinate", "lactose", "lactalbumin", "yogurt", "yoghurt", "ghee", "curd", "kefir",
    ),
    "eggs": ("egg", "eggs", "albumin", "albumen", "ovalbumin", "lysozyme", "mayonnaise", "meringue"),
    "fish": (
        "fish", "anchovy", "anchovies", "cod", "salmon", "tuna", "tilapia", "pollock",
        "haddock", "sardine", "sardines", "trout", "halibut", "mackerel",
    ),
    "shellfish": (
        "shrimp", "prawn", "prawns", "crab", "lobster", "crayfish", "crawfish", "krill",
        "langoustine",
    ),
    "tree_nuts": (
        "almond", "almonds", "cashew", "cashews", "walnut", "walnuts", "pecan", "pecans",
        "pistachio", "pistachios", "hazelnut", "hazelnuts", "filbert", "macadamia",
        "brazil nut", "brazil nuts", "pine nut", "pine nuts", "chestnut", "chestnuts",
    ),
    "peanuts": ("peanut", "peanuts", "groundnut", "groundnuts", "arachis"),
    "wheat": (
        "wheat", "enriched flour", "bleached flour", "all purpose flour", "bread flour",
        "semolina", "durum", "spelt", "farina", "bulgur", "couscous", "seitan", "einkorn",
        "emmer", "kamut", "triticale", "graham flour",
    ),
    "soy": ("soy", "soya", "soybean", "soybeans", "tofu", "edamame", "miso", "tempeh"),
    "sesame": ("sesame", "tahini", "benne", "gingelly"),
}

# Phrases removed before matching an allergen's triggers.
ALLERGEN_EXCLUSIONS: dict[str, tuple[str, ...]] = {
    "milk": (
        "cocoa butter", "shea butter", "peanut butter", "almond butter", "cashew butter",
        "nut butter", "sunflower butter", "sunflower seed butter", "apple butter",
        "coconut milk", "coconut cream", "almond milk", "oat milk", "soy milk", "rice milk",
        "cashew milk", "cream of tartar", "milk thistle",
    ),
    "tree_nuts": ("nutmeg", "water chestnut", "water chestnuts"),
}

MEAT_TERMS = (
    "beef", "pork", "chicken", "turkey", "lamb", "veal", "bacon", "ham", "duck", "venison",
    "gelatin", "gelatine", "lard", "tallow", "pepperoni", "sausage", "carmine", "cochineal",
    "rennet",
)
ANIMAL_PRODUCT_TERMS = ("honey", "beeswax", "shellac", "confectioner s glaze", "lanolin", "vitamin d3")
GLUTEN_TERMS = (
    "barley", "rye", "malt", "malted", "malt extract", "malt vinegar", "brewer s yeast", "oat", "oats",
)
GLUTEN_EXCLUSIONS = ("gluten free oat", "gluten free oats", "buckwheat")
DIET_ALIASES = {"glutenfree": "gluten_free", "gf": "gluten_free", "plant_based": "vegan"}

_FOLD = re.compile(r"[^a-z0-9]+")
_CROSS_CONTACT = re.compile(
    r"\b(?:may\s+contain|produced\s+(?:in|on)|processed\s+(?:in|on)|manufactured\s+(?:in|on)|"
    r"made\s+(?:in|on)\s+(?:a\s+)?(?:facility|equipment)|shared\s+(?:facility|equipment))",
    re.IGNORECASE,
)


def fold(text: str) -> str:
    """Lower-case, accent-free, punctuation-free text padded with spaces."""
    return f" {_FOLD.sub(' ', strip_accents(text).casefold()).strip()} "


def _find_terms(folded: str, terms: tuple[str, ...]) -> list[str]:
    return [term for term in terms if f" {term} " in folded]


def _remove_phrases(folded: str, phrases: tuple[str, ...]) -> str:
    for phrase in phrases:
        folded = folded.replace(f" {phrase} ", " ")
    return folded


def canonical_allergen(name: str) -> str | None:
    """Map an allergen name to one of the nine major categories, or None."""
    key = " ".join(_FOLD.sub(" ", strip_accents(name).casefold()).split())
    if key in MAJOR_ALLERGENS:
        return key
    if key.replace(" ", "_") in MAJOR_ALLERGENS:
        return key.replace(" ", "_")
    return ALLERGEN_SYNONYMS.get(key)


def find_allergen_triggers(ingredients_text: str) -> dict[str, list[str]]:
    """Major allergens implied by ingredient words, with the words that implied them."""
    folded = fold(ingredients_text)
    triggers: dict[str, list[str]] = {}
    for allergen in MAJOR_ALLERGENS:
        text = _remove_phrases(folded, ALLERGEN_EXCLUSIONS.get(allergen, ()))
        found = _find_terms(text, ALLERGEN_TRIGGERS[allergen])
        if found:
            triggers[allergen] = found
    return triggers


def parse_allergen_statement(statement: str) -> set[str]:
    """Allergens named by an explicit "Contains:" statement.

    Anything after a cross-contact phrase ("may contain", "produced in a
    facility") is a warning, not a declaration, and is ignored.
    """
    declared = _CROSS_CONTACT.split(statement, maxsplit=1)[0]
    folded = fold(declared)
    found = {canon for name, canon in ALLERGEN_SYNONYMS.items() if f" {name} " in folded}
    found |= set(find_allergen_triggers(declared))
    return found


def judge_diets(ingredients_text: str) -> dict[str, DietCompliance]:
    """Pattern-based diet judgment for a single ingredient list."""
    folded = fold(ingredients_text)
    triggers = find_allergen_triggers(ingredients_text)

    meat = _find_terms(folded, MEAT_TERMS)
    seafood = triggers.get("fish", []) + triggers.get("shellfish", [])
    animal = triggers.get("milk", []) + triggers.get("eggs", []) + _find_terms(folded, ANIMAL_PRODUCT_TERMS)
    gluten = triggers.get("wheat", []) + _find_terms(
        _remove_phrases(folded, GLUTEN_EXCLUSIONS), GLUTEN_TERMS
    )

    def verdict(causes: list[str]) -> DietCompliance:
        return DietCompliance(compliant=not causes, causes=[cause.title() for cause in causes])

    return {
        "pescatarian": verdict(meat),
        "vegetarian": verdict(meat + seafood),
        "vegan": verdict(meat + seafood + animal),
        "gluten_free": verdict(gluten),
    }


def _merge_causes(target: list[str], causes: list[str]) -> None:
    seen = {cause.casefold() for cause in target}
    for cause in causes:
        if cause and cause.casefold() not in seen:
            target.append(cause)
            seen.add(cause.casefold())


def _canonical_diet(name: str) -> str | None:
    key = _FOLD.sub("_", name.casefold()).strip("_")
    key = DIET_ALIASES.get(key, key)
    return key if key in DIETS else None


@dataclass
class InferenceResult:
    """Consolidated allergen and diet classification."""

    allergens: list[str] = field(default_factory=list)
    allergens_inferred: bool = False
    allergen_triggers: dict[str, list[str]] = field(default_factory=dict)
    diets: list[str] = field(default_factory=list)
    diets_inferred: bool = True
    dietary_compliance: dict[str, DietCompliance] = field(default_factory=dict)
    cross_contamination_warnings: str = ""
    dropped_allergens: list[str] = field(default_factory=list)


def consolidate_warnings(sources: list[Source]) -> str:
    warnings: list[str] = []
    for source in sources:
        _merge_causes(warnings, [w.strip() for w in source.cross_contamination_warnings])
    return "; ".join(warnings)


def _source_allergens(source: Source, result: InferenceResult) -> set[str]:
    triggers = find_allergen_triggers(source.ingredients_text)
    for allergen, words in triggers.items():
        _merge_causes(result.allergen_triggers.setdefault(allergen, []), words)

    found = set(triggers)
    if source.explicit_allergen_statement:
        found |= parse_allergen_statement(source.explicit_allergen_statement)

    for claimed in source.allergens:
        canon = canonical_allergen(claimed)
        if canon is None:
            result.dropped_allergens.append(claimed)
            logger.info(
                "Dropping non-major allergen claim",
                extra={"allergen": claimed, "source": source.name},
            )
        elif canon not in found:
            result.dropped_allergens.append(claimed)
            logger.info(
                "Dropping allergen claim without trigger ingredient",
                extra={"allergen": canon, "source": source.name},
            )
    return found


def _source_diets(source: Source, allergens: set[str]) -> dict[str, DietCompliance]:
    judged = judge_diets(source.ingredients_text)

    for name, claim in source.dietary_compliance.items():
        diet = _canonical_diet(name)
        if diet is None or claim.compliant:
            continue
        verdict = judged[diet]
        causes = list(verdict.causes)
        _merge_causes(causes, claim.causes)
        judged[diet] = DietCompliance(compliant=False, causes=causes)

    implied = {
        "vegan": [a for a in ("milk", "eggs", "fish", "shellfish") if a in allergens],
        "vegetarian": [a for a in ("fish", "shellfish") if a in allergens],
        "gluten_free": ["wheat"] if "wheat" in allergens else [],
    }
    # Cite the ingredient words, or the statement itself when it is the only evidence.
    triggers = find_allergen_triggers(source.ingredients_text)
    statement = (source.explicit_allergen_statement or "").strip()
    for diet, conflicting in implied.items():
        if conflicting and judged[diet].compliant:
            causes: list[str] = []
            for allergen in conflicting:
                words = [word.title() for word in triggers.get(allergen, [])]
                _merge_causes(causes, words or [statement])
            judged[diet] = DietCompliance(compliant=False, causes=causes)
    return judged


def _enforce_diet_hierarchy(compliance: dict[str, DietCompliance]) -> None:
    """vegan => vegetarian => pescatarian, applied as contrapositives."""
    for broader, narrower in (("pescatarian", "vegetarian"), ("vegetarian", "vegan")):
        if not compliance[broader].compliant:
            causes = list(compliance[narrower].causes)
            _merge_causes(causes, compliance[broader].causes)
            compliance[narrower] = DietCompliance(compliant=False, causes=causes)


def infer_allergens_and_diets(sources: list[Source]) -> InferenceResult:
    """Combine allergen and diet evidence from consensus sources."""
    result = InferenceResult()
    if not sources:
        return result

    allergens: set[str] = set()
    compliance = {diet: DietCompliance(compliant=True) for diet in DIETS}
    has_statement = False

    for source in sources:
        found = _source_allergens(source, result)
        allergens |= found
        has_statement = has_statement or bool(source.explicit_allergen_statement)

        for diet, verdict in _source_diets(source, found).items():
            current = compliance[diet]
            causes = list(current.causes)
            _merge_causes(causes, verdict.causes)
            compliance[diet] = DietCompliance(
                compliant=current.compliant and verdict.compliant, causes=causes
            )

    _enforce_diet_hierarchy(compliance)

    result.allergens = [a for a in MAJOR_ALLERGENS if a in allergens]
    result.allergen_triggers = {
        a: words for a, words in result.allergen_triggers.items() if a in allergens
    }
    result.allergens_inferred = not has_statement and bool(result.allergens)
    result.dietary_compliance = compliance
    result.diets = [diet for diet in DIETS if compliance[diet].compliant]
    result.diets_inferred = not any(source.explicit_dietary_labels for source in sources)
    result.cross_contamination_warnings = consolidate_warnings(sources)
    return result
