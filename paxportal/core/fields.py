"""
Passenger field catalog.

Static definition of every field captured per passenger slot. The
``fillable_by`` flag decides who may write a key into
``FormResponse.answers``:

    CLIENT  — filled by the client in the portal
    ADMIN   — operational data entered by staff only
    BOTH    — either side
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field


class FieldType:
    TEXT = "TEXT"
    EMAIL = "EMAIL"
    DATE = "DATE"
    SELECT = "SELECT"
    PHONE = "PHONE"
    DOCUMENT = "DOCUMENT"
    PHOTO = "PHOTO"


class FillableBy:
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"
    BOTH = "BOTH"


@dataclass(frozen=True)
class FieldDefinition:
    key: str
    label_pt: str
    label_en: str
    type: str
    required: bool
    fillable_by: str
    order: int
    options: list[str] = field(default_factory=list)
    placeholder_pt: str | None = None
    placeholder_en: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


PASSENGER_FIELDS: list[FieldDefinition] = [
    # ── Client fields ──
    FieldDefinition("full_name", "Nome completo", "Full name", FieldType.TEXT, True,
                    FillableBy.CLIENT, 1, placeholder_pt="Como consta no documento",
                    placeholder_en="As shown on the document"),
    FieldDefinition("nationality", "Nacionalidade", "Nationality", FieldType.TEXT, True,
                    FillableBy.CLIENT, 2),
    FieldDefinition("gender", "Gênero", "Gender", FieldType.SELECT, True, FillableBy.CLIENT, 3,
                    options=["Masculino|Male", "Feminino|Female", "Outro|Other"]),
    FieldDefinition("document_type", "Tipo de documento", "Document type", FieldType.SELECT, True,
                    FillableBy.CLIENT, 4, options=["CPF", "RG", "Passaporte|Passport", "DNI"]),
    FieldDefinition("document_number", "Número do documento", "Document number",
                    FieldType.DOCUMENT, True, FillableBy.CLIENT, 5),
    FieldDefinition("document_issuing_country", "País emissor", "Issuing country",
                    FieldType.TEXT, True, FillableBy.CLIENT, 6),
    FieldDefinition("document_expiry_date", "Validade do documento", "Document expiry date",
                    FieldType.DATE, True, FillableBy.CLIENT, 7),
    FieldDefinition("birth_date", "Data de nascimento", "Date of birth", FieldType.DATE, True,
                    FillableBy.CLIENT, 8),
    FieldDefinition("fan_team", "Time do coração", "Supported team", FieldType.TEXT, False,
                    FillableBy.CLIENT, 9),
    FieldDefinition("phone", "Telefone", "Phone", FieldType.PHONE, True, FillableBy.CLIENT, 10,
                    placeholder_pt="+55 11 99999-9999", placeholder_en="+1 555 000 0000"),
    FieldDefinition("email", "E-mail", "Email", FieldType.EMAIL, True, FillableBy.CLIENT, 11),
    FieldDefinition("profile_photo", "Foto", "Photo", FieldType.PHOTO, False,
                    FillableBy.CLIENT, 12),
    # ── Admin fields ──
    FieldDefinition("ticket_status", "Status do ingresso", "Ticket status", FieldType.TEXT, False,
                    FillableBy.ADMIN, 13),
    FieldDefinition("hotel_confirmation_number", "Confirmação do hotel",
                    "Hotel confirmation number", FieldType.TEXT, False, FillableBy.ADMIN, 14),
    FieldDefinition("flight_locator", "Localizador do voo", "Flight locator", FieldType.TEXT,
                    False, FillableBy.ADMIN, 15),
    FieldDefinition("insurance_number", "Número do seguro", "Insurance number", FieldType.TEXT,
                    False, FillableBy.ADMIN, 16),
    FieldDefinition("transfer_reference", "Referência do transfer", "Transfer reference",
                    FieldType.TEXT, False, FillableBy.ADMIN, 17),
]

CLIENT_FIELD_KEYS = frozenset(
    f.key for f in PASSENGER_FIELDS if f.fillable_by in (FillableBy.CLIENT, FillableBy.BOTH)
)
ADMIN_FIELD_KEYS = frozenset(
    f.key for f in PASSENGER_FIELDS if f.fillable_by in (FillableBy.ADMIN, FillableBy.BOTH)
)


def get_field_catalog() -> list[dict]:
    return [f.to_dict() for f in sorted(PASSENGER_FIELDS, key=lambda f: f.order)]
