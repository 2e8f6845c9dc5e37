"""Status catalogue: client-facing labels and the capability each status needs."""

from contracts import Action, DossierStatus, TERMINAL_STATUSES


STATUS_LABELS = {
    DossierStatus.RECU: "Reçu",
    DossierStatus.ACCEPTE: "Accepté",
    DossierStatus.REFUSE: "Refusé",
    DossierStatus.ANNULE: "Annulé",
    DossierStatus.EN_ATTENTE_ONBOARDING: "En attente d'onboarding (RDV)",
    DossierStatus.EN_COURS_INSTRUCTION: "En cours d'instruction (constitution dossier)",
    DossierStatus.PIECES_MANQUANTES: "Pièces manquantes (relance client)",
    DossierStatus.DOSSIER_COMPLET: "Dossier Complet",
    DossierStatus.DEPOSE: "Déposé",
    DossierStatus.RECEPTION_CONFIRMEE: "Réception confirmée",
    DossierStatus.COMPLEMENT_DEMANDE: "Complément demandé (avec date limite)",
    DossierStatus.DECISION_DEFAVORABLE: "Décision défavorable",
    DossierStatus.COMMUNICATION_MOTIFS: "Communication des Motifs",
    DossierStatus.RECOURS_PREPARATION: "Recours en préparation",
    DossierStatus.REFERE_MESURES_UTILES: "Référé Mesures Utiles",
    DossierStatus.REFERE_SUSPENSION_REP: "Référé suspension et REP",
    DossierStatus.GAIN_CAUSE: "Gain de cause",
    DossierStatus.REJET: "Rejet",
    DossierStatus.DECISION_FAVORABLE: "Décision favorable",
    DossierStatus.AUTRE: "Autre",
}


def status_label(status) -> str:
    """Human label for a status value; unknown values are returned as-is."""
    try:
        return STATUS_LABELS[DossierStatus(status)]
    except ValueError:
        return str(status)


def required_action(status) -> Action:
    """Capability needed to move a dossier into `status`.

    Cancelling needs `cancel`, other terminal statuses need `close`.
    """
    status = DossierStatus(status)
    if status == DossierStatus.ANNULE:
        return Action.CANCEL
    if status in TERMINAL_STATUSES:
        return Action.CLOSE
    return Action.UPDATE_STATUS
