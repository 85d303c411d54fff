"""
Constantes centralizadas da aplicação.

Seções:
    - TASKS: estados e prioridades de tarefas
    - CLIENTS: funil de leads, localização e proveniência
    - CALENDAR: tipos de evento
    - FINANCE: tipos, estados e categorias sugeridas de transações
    - NOTIFICATIONS: categorias de notificação
    - ROLES: cargos e grupos de permissão
    - UPLOAD: regras de upload de avatar
    - LABELS: textos sentinela usados na leitura
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Kanban column of a task."""

    BACKLOG = "Backlog"
    TODO = "ToDo"
    IN_PROGRESS = "InProgress"
    REVIEW = "Review"
    DONE = "Done"


# Status written by older clients; only counted by the team dashboard.
LEGACY_MISSED_STATUS = "Missed"


class TaskPriority(str, Enum):
    LOW = "BAIXA"
    MEDIUM = "MÉDIA"
    HIGH = "ALTA"
    CRITICAL = "CRÍTICA"


class ClientStatus(str, Enum):
    """Stage of a lead in the sales funnel."""

    NEW_LEAD = "Novo Lead"
    IN_CONTACT = "Em Contacto"
    PROPOSAL_SENT = "Proposta Enviada"
    CONSULTATION_SCHEDULED = "Consultoria Marcada"
    CONVERTED = "Convertido"
    RE_ENGAGE = "Repescagem"
    LOST = "Perdido"


class ClientLocation(str, Enum):
    MAPUTO_CITY = "Maputo Cidade"
    MAPUTO_PROVINCE = "Maputo Província"


class ClientProvenance(str, Enum):
    SOCIAL_MEDIA = "Redes Sociais"
    GOOGLE = "Google"
    WALK_IN = "Andando pela cidade"
    REFERRAL = "Recomendação"
    OTHER = "Outro"


class EventType(str, Enum):
    MEETING = "Reunião"
    HOLIDAY = "Feriado"
    DAY_OFF = "Folga"
    GENERAL = "Geral"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"


class TransactionStatus(str, Enum):
    PAID = "Pago"
    PENDING = "Pendente"
    RECEIVED = "Recebido"


TRANSACTION_CATEGORIES = {
    TransactionType.INCOME: ("Pagamento de Cliente", "Investimento de Sócio", "Outro"),
    TransactionType.INVESTMENT: ("Software", "Material de Escritório", "Hardware", "Marketing", "Trading"),
    TransactionType.EXPENSE: ("Infraestrutura", "Fixos", "Recursos Humanos", "Marketing", "Outros"),
}


class NotificationType(str, Enum):
    """Category stored in ``notifications.type``."""

    TASK_ASSIGNED = "task_assigned"
    DEADLINE_24H = "deadline_24h"
    DEADLINE_TODAY = "deadline_today"
    TASK_OVERDUE = "task_overdue"


class UserRole(str, Enum):
    PROJECT_MANAGER = "Gestor de Projectos"
    CREATIVE_MANAGER = "Gestor Criativo"
    PARTNERS_MANAGER = "Gestor de Parceiros e Clientes"
    TRADING_MANAGER = "Gestor de Trading e Negociação"
    DESIGNER = "Designer"
    SALES_PROMOTER = "Promoter de Venda"
    VIDEOMAKER = "Videomaker"
    COLLABORATOR = "Colaborador"


MANAGER_ROLES = frozenset(
    {
        UserRole.PROJECT_MANAGER.value,
        UserRole.CREATIVE_MANAGER.value,
        UserRole.PARTNERS_MANAGER.value,
        UserRole.TRADING_MANAGER.value,
    }
)

DEFAULT_ROLE = UserRole.COLLABORATOR.value

# =============================================================================
# UPLOAD - AVATARES
# =============================================================================

AVATAR_BUCKET = "user-uploads"
AVATAR_PREFIX = "avatars"
AVATAR_MAX_BYTES = 2 * 1024 * 1024
AVATAR_CACHE_CONTROL = "3600"

# =============================================================================
# LABELS
# =============================================================================

DEFAULT_AVATAR = "https://ui-avatars.com/api/?background=0D8ABC&color=fff&name=User"
UNASSIGNED_LABEL = "Sem responsável"
SYSTEM_CREATOR_LABEL = "Sistema"
DEFAULT_ASSIGNER_LABEL = "um gestor"
CLAIM_ACTIVITY = "Assumiu o lead"
STATUS_CHANGE_ACTIVITY = "Estado alterado"

# Tables with a change feed subscription.
TABLE_USERS = "users"
TABLE_TASKS = "tasks"
TABLE_CLIENTS = "clients"
TABLE_EVENTS = "calendar_events"
TABLE_TRANSACTIONS = "transactions"
TABLE_NOTIFICATIONS = "notifications"
VIEW_TASKS_WITH_USERS = "tasks_with_users"
VIEW_CLIENTS_WITH_USERS = "clients_with_users"
