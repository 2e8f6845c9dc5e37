"""Dossier (case file) contracts.

A dossier belongs either to a linked account (`user_id`) or to inline contact
fields captured by anonymous intake, never both.
"""

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from enum import Enum
from datetime import datetime

from .actor_contracts import new_id


class DossierStatus(str, Enum):
    """Flat lifecycle status set. Any status may follow any other."""
    RECU = "recu"
    ACCEPTE = "accepte"
    REFUSE = "refuse"
    ANNULE = "annule"
    EN_ATTENTE_ONBOARDING = "en_attente_onboarding"
    EN_COURS_INSTRUCTION = "en_cours_instruction"
    PIECES_MANQUANTES = "pieces_manquantes"
    DOSSIER_COMPLET = "dossier_complet"
    DEPOSE = "depose"
    RECEPTION_CONFIRMEE = "reception_confirmee"
    COMPLEMENT_DEMANDE = "complement_demande"
    DECISION_DEFAVORABLE = "decision_defavorable"
    COMMUNICATION_MOTIFS = "communication_motifs"
    RECOURS_PREPARATION = "recours_preparation"
    REFERE_MESURES_UTILES = "refere_mesures_utiles"
    REFERE_SUSPENSION_REP = "refere_suspension_rep"
    GAIN_CAUSE = "gain_cause"
    REJET = "rejet"
    DECISION_FAVORABLE = "decision_favorable"
    AUTRE = "autre"


TERMINAL_STATUSES = frozenset({
    DossierStatus.ANNULE,
    DossierStatus.DECISION_FAVORABLE,
    DossierStatus.DECISION_DEFAVORABLE,
    DossierStatus.REJET,
    DossierStatus.GAIN_CAUSE,
})


class Priority(str, Enum):
    """Dossier priority."""
    BASSE = "basse"
    NORMALE = "normale"
    HAUTE = "haute"
    URGENTE = "urgente"


class Category(str, Enum):
    """Legal domain of the dossier."""
    SEJOUR_TITRES = "sejour_titres"
    CONTENTIEUX_ADMINISTRATIF = "contentieux_administratif"
    ASILE = "asile"
    REGROUPEMENT_FAMILIAL = "regroupement_familial"
    NATIONALITE_FRANCAISE = "nationalite_francaise"
    ELOIGNEMENT_URGENCE = "eloignement_urgence"
    AUTRE = "autre"


class ActiveCollaborator(BaseModel):
    """Presence entry for a staff member currently working on a dossier."""
    staff_id: str
    joined_at: datetime = Field(default_factory=datetime.now)
    last_activity: datetime = Field(default_factory=datetime.now)


class Dossier(BaseModel):
    """The central record representing one client's legal matter."""
    id: str = Field(default_factory=new_id)
    number: Optional[str] = Field(None, description="PREFIX-YYYYMMDD-NNNN, assigned once")
    title: str = ""
    description: str = ""
    category: Category = Category.AUTRE
    type: str = ""
    status: DossierStatus = DossierStatus.RECU
    priority: Priority = Priority.NORMALE
    due_date: Optional[datetime] = None
    notes: str = ""
    refusal_reason: Optional[str] = None

    # Client: linked account or inline contact
    user_id: Optional[str] = Field(None, description="Linked client account")
    client_first_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None

    created_by: Optional[str] = Field(None, description="None for self-service intake")
    team_members: List[str] = Field(default_factory=list)
    team_leader: Optional[str] = None
    active_collaborators: List[ActiveCollaborator] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _client_is_exclusive(self) -> "Dossier":
        if self.user_id and any([
            self.client_first_name, self.client_last_name,
            self.client_email, self.client_phone,
        ]):
            raise ValueError("A dossier linked to an account cannot carry inline contact fields")
        if self.client_email:
            self.client_email = self.client_email.strip().lower()
        return self

    @property
    def is_closed(self) -> bool:
        """True once the dossier reached a terminal status."""
        return self.status in TERMINAL_STATUSES

    @property
    def display_title(self) -> str:
        return self.title or f"Dossier {self.number or self.id}"

    def set_status(self, status: DossierStatus) -> None:
        """Change status; entering a terminal status clears presence in the same update."""
        self.status = DossierStatus(status)
        if self.status in TERMINAL_STATUSES:
            self.active_collaborators = []

    def is_member(self, user_id: str) -> bool:
        return user_id in self.team_members

    def is_leader(self, user_id: str) -> bool:
        return self.team_leader is not None and self.team_leader == user_id


class DossierCreate(BaseModel):
    """Parameters for creating a dossier."""
    user_id: Optional[str] = Field(None, description="Explicit client account to link")
    client_first_name: Optional[str] = None
    client_last_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    title: str = ""
    description: str = ""
    category: Category = Category.AUTRE
    type: str = ""
    status: DossierStatus = DossierStatus.RECU
    priority: Priority = Priority.NORMALE
    due_date: Optional[datetime] = None
    notes: str = ""


class DossierUpdate(BaseModel):
    """Partial edit. Fields left as None are untouched."""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    type: Optional[str] = None
    status: Optional[DossierStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    refusal_reason: Optional[str] = None
    notification_message: Optional[str] = Field(
        None, description="Custom text overriding the generated status-change message"
    )

    def field_changes(self) -> dict:
        """Status-neutral field changes requested by this update."""
        return {
            k: v for k, v in self.model_dump(exclude={"status", "notification_message"}).items()
            if v is not None
        }
