"""Default keyword table for transaction classification (Haitian context)"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from finsight.domain.models import Category


@dataclass(frozen=True)
class KeywordRule:
    keywords: Tuple[str, ...]
    confidence: float


KeywordTable = Mapping[Category, KeywordRule]


def build_keyword_table(rules: Mapping[Category, KeywordRule]) -> KeywordTable:
    """Freeze a rule mapping so an engine cannot mutate it after construction"""
    return MappingProxyType(
        {
            category: KeywordRule(
                keywords=tuple(k.lower() for k in rule.keywords),
                confidence=rule.confidence,
            )
            for category, rule in rules.items()
        }
    )


DEFAULT_KEYWORD_TABLE: KeywordTable = build_keyword_table(
    {
        Category.TRANSPORT: KeywordRule(
            keywords=(
                # public transport
                "tap-tap", "taptap", "tap tap",
                "moto", "mototaxi", "moto-taxi",
                "taxi", "cab",
                "bus", "autobus",
                "transport",
                # fuel
                "carburant", "essence", "diesel", "gazoline", "gas",
                "station", "pompe",
            ),
            confidence=0.9,
        ),
        Category.FOOD: KeywordRule(
            keywords=(
                "marché", "market", "mache",
                "courses", "shopping",
                "supermarché", "supèmake",
                "épicerie", "boutik",
                "restaurant", "restoran",
                "lunch", "dinner", "breakfast",
                "petit-déjeuner", "dejene",
                "manger", "food", "nourriture", "bouffe",
                "pain", "riz", "viande", "légumes",
            ),
            confidence=0.9,
        ),
        Category.SERVICES: KeywordRule(
            keywords=(
                # telecom operators
                "digicel", "natcom", "teleco",
                "internet", "wifi", "wi-fi",
                "data", "mégaoctets", "mb", "gb",
                "recharge", "crédit", "credit",
                "forfait", "plan", "abonnement",
                "téléphone", "phone", "mobile", "cellulaire",
                # utilities
                "électricité", "electricity", "courant",
                "ed'h", "edh", "lumière",
                "eau", "water", "dlo",
                "facture", "bill", "paiement",
                "câble", "cable", "tv", "télévision",
                "banque", "bank", "frais bancaires",
            ),
            confidence=0.85,
        ),
        Category.SAVINGS_GROUP: KeywordRule(
            keywords=(
                "sol", "sòl", "tontine",
                "kòb", "main", "tour",
                "ajans", "agence",
                "sosyete", "société",
                "woule", "rotation",
                "bòs", "boss",
                "épargne collective", "cotisation",
                "contribution", "participation",
            ),
            confidence=0.95,
        ),
        Category.HOUSING: KeywordRule(
            keywords=(
                "loyer", "rent", "lwaye",
                "kay", "maison", "house",
                "appartement", "apatman",
                "chambre", "room",
                "réparation", "reparasyon",
                "construction", "konstriksyon",
            ),
            confidence=0.9,
        ),
        Category.HEALTH: KeywordRule(
            keywords=(
                "médecin", "doctor", "doktè",
                "docteur", "infirmière",
                "dentiste", "dantis",
                "hôpital", "hospital", "lopital",
                "clinique", "klinik",
                "pharmacie", "famasi",
                "consultation", "konsiltasyon",
                "médicament", "medikaman",
                "traitement", "tretman",
                "ordonnance", "lòdonnans",
                "vaccin", "vaksen",
            ),
            confidence=0.9,
        ),
        Category.EDUCATION: KeywordRule(
            keywords=(
                "école", "school", "lekòl",
                "université", "inivèsite",
                "collège", "kolèj",
                "lycée", "lise",
                "frais scolaires", "scolarité",
                "inscription", "enskrisyon",
                "écolage", "ekolaj",
                "cours", "kou",
                "formation", "fòmasyon",
                "livre", "liv",
                "cahier", "kaye",
                "uniforme", "inifòm",
            ),
            confidence=0.9,
        ),
        Category.ENTERTAINMENT: KeywordRule(
            keywords=(
                "cinéma", "movie", "sinema",
                "concert", "konsè",
                "spectacle", "show",
                "bar", "nightclub",
                "fête", "party", "fèt",
                "sortie", "sòti",
                "restaurant-bar",
                "loisir", "lwazi",
            ),
            confidence=0.8,
        ),
        Category.OTHER: KeywordRule(
            keywords=("divers", "autre", "other", "lòt"),
            confidence=0.3,
        ),
    }
)
