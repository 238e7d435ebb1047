"""
Reimbursement email drafting.
Builds the report prompt from trip data and asks the AI service for a
subject/body pair following the company template.
"""

import logging
from datetime import date, datetime
from urllib.parse import quote
from typing import Optional, Sequence, Union

from pydantic import ValidationError

from .exceptions import AIServiceError
from .llm import AIClient
from .models import EmailDraft, Expense, ExpenseCategory, TripMetadata

logger = logging.getLogger(__name__)

FALLBACK_EMAIL = EmailDraft(
    subject="Demande de remboursement - Frais de déplacement",
    body=(
        "Erreur lors de la génération de l'email. "
        "Veuillez vérifier votre connexion ou réessayer."
    ),
)

UNSPECIFIED_ORIGIN = "Non spécifié"
UNSPECIFIED_DESTINATION = "Non spécifié (Déduit des frais)"

REPORT_PROMPT = """
Rôle : Agis en tant qu'expert en comptabilité de voyage allemande (Reisekostenabrechnung).

DONNÉES DU SUIVI DE FRAIS (CONTEXTE) :
- Ville de destination : {destination}
- Départ : {origin} le {start}
- Retour : le {end}
- Tableau des dépenses saisies :
{expense_list}

Tâche : Rédige l'email de demande de remboursement pour {recipient} en suivant STRICTEMENT le modèle ci-dessous.

Instructions de calcul (Indemnités Repas / Verpflegungsmehraufwand) :
- Calcule le forfait BMF 2024 pour le pays de destination ({destination}).
- Applique la déduction de 20% du forfait journalier complet pour chaque petit-déjeuner noté (champ "Petits-déjeuners" > 0 dans les dépenses ou inclus dans l'hôtel).

FORMAT DE L'EMAIL (Output attendu) :

Objet : Demande de remboursement – Déplacement professionnel à [Destination] ([Dates])

Bonjour {recipient},
Veuillez trouver ci-joint ma demande de remboursement relative à ma mission effectuée à [Destination] du [Date début] au [Date fin].

Récapitulatif du déplacement :
- Départ : [Ville Départ] le [Date] à [Heure].
- Retour : le [Date] à [Heure].
- Lieu de mission : [Destination], [Pays].

Frais à rembourser :
- Ligne Hôtel ([Nombre] nuits, [Nom Hôtel]) : [Montant] EUR.
- Ligne Carburant / Transport ([Nom Prestataires]) : [Montant] EUR.
- Ligne Repas (Forfait BMF [Pays] [Montant Forfait Brut] EUR, déduction de [Nb] petits-déjeuners à [Montant Unitaire Déduction] EUR soit [Total Déduction] EUR) : [Montant Net Indemnité] EUR.

**Total à rembourser : [Somme Totale] EUR**.

Ce calcul a été effectué en stricte conformité avec les barèmes du BMF Schreiben du 21.11.2023.
L'ensemble des justificatifs est annexé à cet envoi.

Signature : {signature}.

Contraintes :
- Ne mets pas de texte avant ou après ce modèle.
- Si une catégorie (Hôtel ou Carburant) est vide (0€), ne l'affiche pas dans la liste.
- Sois précis sur les calculs.

Réponds uniquement avec un objet JSON {{"subject": "...", "body": "..."}}.
"""


def format_date(value: Optional[Union[date, datetime, str]]) -> str:
    """Format dates as DD/MM/YYYY and datetimes as DD/MM/YYYY HH:MM.

    ISO strings are accepted; other strings are returned unchanged.
    """
    if value is None or value == "":
        return "N/A"
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
        except ValueError:
            parts = value.split("-")
            if len(parts) == 3:
                return f"{parts[2]}/{parts[1]}/{parts[0]}"
            return value
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")


def build_mailto_url(to: str, draft: EmailDraft) -> str:
    """mailto: link opening the draft in the user's mail client."""
    return (
        f"mailto:{quote(to or '', safe='@')}"
        f"?subject={quote(draft.subject, safe='')}&body={quote(draft.body, safe='')}"
    )


def format_expense_line(expense: Expense) -> str:
    line = (
        f"{format_date(expense.date)} | {expense.category.value} | {expense.location} | "
        f"{expense.amount} {expense.currency}"
    )
    if expense.category == ExpenseCategory.HOTEL:
        line += (
            f" (Détails: {expense.hotel_nights or 0} Nuits, "
            f"{expense.hotel_breakfasts or 0} Petits-déjeuners)"
        )
    return line


class ReportComposer:
    """Drafts reimbursement emails through the AI service."""

    def __init__(self, ai_client: AIClient, recipient: str = "Sandrine",
                 signature: str = "Yohan Bouyssiere", recipient_email: str = ""):
        self.ai_client = ai_client
        self.recipient = recipient
        self.recipient_email = recipient_email
        self.signature = signature
        self.logger = logger

    def build_prompt(self, trip: TripMetadata, expenses: Sequence[Expense]) -> str:
        """Render the report prompt for a trip and its expenses.

        The date range uses the trip's departure/return when set, otherwise
        the first and last expense dates.
        """
        first = expenses[0].date if expenses else None
        last = expenses[-1].date if expenses else None
        start = format_date(trip.departure_date or first)
        end = format_date(trip.return_date or last)

        return REPORT_PROMPT.format(
            destination=trip.destination or UNSPECIFIED_DESTINATION,
            origin=trip.departure_location or UNSPECIFIED_ORIGIN,
            start=start,
            end=end,
            expense_list="\n".join(format_expense_line(e) for e in expenses),
            recipient=self.recipient,
            signature=self.signature,
        )

    def compose_email(self, trip: TripMetadata, expenses: Sequence[Expense]) -> EmailDraft:
        """Draft the reimbursement email.

        Never raises: any failure yields FALLBACK_EMAIL.
        """
        prompt = self.build_prompt(trip, expenses)
        try:
            result = self.ai_client.complete_json([{"type": "text", "text": prompt}])
            draft = EmailDraft.model_validate(result)
        except (AIServiceError, ValidationError) as e:
            self.logger.error(f"Email generation failed: {str(e)}")
            return FALLBACK_EMAIL.model_copy()

        self.logger.info(f"Drafted reimbursement email for {len(expenses)} expenses")
        return draft
