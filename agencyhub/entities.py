"""
Field maps for every entity type the sync layer stores.

Each map is registered with the generic codec on import. Column names are
derived from the camelCase field name unless given explicitly.
"""

from .codec import (
    BOOLEAN, CLIENT_STATUS_MAP, INTEGER, JSON, LEAD_STATUS_MAP, LIST, NUMBER,
    OPTIONAL, PRESENCE, STATUS, EntityCodec, field, register,
)

# ──────────────────────────────────────────────────────────────────
# Enumerations (canonical values)
# ──────────────────────────────────────────────────────────────────
CLIENT_RATINGS = ["A_plus", "A", "B", "C"]
CLIENT_STATUSES = list(CLIENT_STATUS_MAP.values())
CLIENT_STATUS_ACTIVE = CLIENT_STATUS_MAP["Active"]
EFFORT_LEVELS = ["Low", "Medium", "High"]

LEAD_STATUSES = list(LEAD_STATUS_MAP.values())
LEAD_STATUS_NEW = LEAD_STATUS_MAP["New"]
LEAD_STATUS_WON = LEAD_STATUS_MAP["Won"]
LEAD_TERMINAL_STATUSES = (LEAD_STATUS_WON, LEAD_STATUS_MAP["Lost"], LEAD_STATUS_MAP["Not_relevant"])
SOURCE_CHANNELS = ["Facebook", "Instagram", "Referral", "Website", "WhatsApp", "Other"]

DEAL_STATUSES = ["In_progress", "Completed", "Paid", "Unpaid"]
EXPENSE_TYPES = ["Media", "Freelancer", "Tool", "Other"]

PAYMENT_PAID = "Paid"
PAYMENT_PARTIAL = "Partial"
PAYMENT_UNPAID = "Unpaid"

NOTE_MANUAL = "manual"
NOTE_TYPES = [
    NOTE_MANUAL,
    "transcript_summary",
    "recommendation_summary",
    "personality_insight",
    "strategy_summary",
    "whatsapp_summary",
]

# Client children removed together with the client
CLIENT_CHILD_KINDS = ("deal", "expense", "payment")


# ══════════════════════════════════════════════════════════════
# CLIENTS / LEADS
# ══════════════════════════════════════════════════════════════

CLIENT = register(EntityCodec(
    kind="client", table="clients", collection="clients",
    id_field="clientId", label="לקוח", title_field="clientName",
    money_fields=("monthlyRetainer", "supplierCostMonthly"),
    fields=[
        field("clientId"),
        field("clientName"),
        field("businessName"),
        field("phone"),
        field("email"),
        field("industry"),
        field("rating"),
        field("status", STATUS, statuses=CLIENT_STATUS_MAP),
        field("joinDate"),
        field("churnDate", OPTIONAL),
        field("monthlyRetainer", NUMBER),
        field("billingDay", INTEGER),
        field("services", LIST),
        field("effortLevel"),
        field("supplierCostMonthly", NUMBER),
        field("notes"),
        field("nextReviewDate"),
        field("addedAt"),
        field("assignedTo", OPTIONAL),
        field("createdBy", OPTIONAL),
    ],
))

LEAD = register(EntityCodec(
    kind="lead", table="leads", collection="leads",
    id_field="leadId", label="ליד", title_field="leadName",
    money_fields=("quotedMonthlyValue",),
    fields=[
        field("leadId"),
        field("createdAt"),
        field("leadName"),
        field("businessName"),
        field("phone"),
        field("email"),
        field("sourceChannel"),
        field("interestedServices", LIST),
        field("notes"),
        field("nextContactDate"),
        field("status", STATUS, statuses=LEAD_STATUS_MAP),
        field("quotedMonthlyValue", NUMBER),
        field("relatedClientId", OPTIONAL),
        field("createdBy", OPTIONAL),
        field("assignedTo", OPTIONAL),
    ],
))

# ══════════════════════════════════════════════════════════════
# FINANCE
# ══════════════════════════════════════════════════════════════

DEAL = register(EntityCodec(
    kind="deal", table="deals", collection="oneTimeDeals",
    id_field="dealId", label="עסקה", title_field="dealName",
    money_fields=("dealAmount", "supplierCost"),
    parent_fields=("clientId",),
    fields=[
        field("dealId"),
        field("clientId"),
        field("dealName"),
        field("dealType"),
        field("dealAmount", NUMBER),
        field("dealDate"),
        field("dealStatus"),
        field("supplierCost", NUMBER),
        field("notes"),
        field("createdAt"),
    ],
))

EXPENSE = register(EntityCodec(
    kind="expense", table="expenses", collection="expenses",
    id_field="expenseId", label="הוצאה", title_field="supplierName",
    money_fields=("amount",),
    parent_fields=("clientId",),
    fields=[
        field("expenseId"),
        field("clientId", OPTIONAL),
        field("expenseDate"),
        field("monthKey"),
        field("supplierName"),
        field("expenseType"),
        field("amount", NUMBER),
        field("notes"),
        field("isRecurring", BOOLEAN),
        field("receiptUrl", OPTIONAL),
        field("createdAt"),
    ],
))

PAYMENT = register(EntityCodec(
    kind="payment", table="payments", collection="payments",
    id_field="paymentId", label="תשלום", title_field="periodMonth",
    money_fields=("amountDue", "amountPaid"),
    parent_fields=("clientId",),
    fields=[
        field("paymentId"),
        field("clientId"),
        field("periodMonth"),
        field("amountDue", NUMBER),
        field("amountPaid", NUMBER),
        field("paymentDate", OPTIONAL),
        field("paymentStatus"),
        field("notes"),
        field("createdAt"),
    ],
))

RETAINER_CHANGE = register(EntityCodec(
    kind="retainer_change", table="retainer_changes", collection="retainerHistory",
    label="שינוי ריטיינר", parent_fields=("clientId",),
    fields=[
        field("id"),
        field("clientId"),
        field("oldRetainer", NUMBER),
        field("newRetainer", NUMBER),
        field("oldSupplierCost", NUMBER),
        field("newSupplierCost", NUMBER),
        field("changedAt"),
        field("notes"),
    ],
))

# ══════════════════════════════════════════════════════════════
# NOTES / INTELLIGENCE (owned by a client or a lead)
# ══════════════════════════════════════════════════════════════

CLIENT_NOTE = register(EntityCodec(
    kind="client_note", table="client_notes", collection="clientNotes",
    label="הערה", parent_fields=("clientId",),
    fields=[
        field("id"),
        field("clientId"),
        field("content"),
        field("noteType"),
        field("sourceId", OPTIONAL),
        field("createdBy"),
        field("createdByName"),
        field("createdAt"),
    ],
))

LEAD_NOTE = register(EntityCodec(
    kind="lead_note", table="lead_notes", collection="leadNotes",
    label="הערה", parent_fields=("leadId",),
    fields=[
        field("id"),
        field("leadId"),
        field("content"),
        field("noteType"),
        field("sourceId", OPTIONAL),
        field("createdBy"),
        field("createdByName"),
        field("createdAt"),
    ],
))

CALL_TRANSCRIPT = register(EntityCodec(
    kind="call_transcript", table="call_transcripts", collection="callTranscripts",
    label="תמלול שיחה", title_field="callDate", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("callDate"),
        field("participants"),
        field("transcript"),
        field("summary"),
        field("recordingUrl", OPTIONAL),
        field("createdBy"),
        field("createdByName"),
        field("createdAt"),
    ],
))

AI_RECOMMENDATION = register(EntityCodec(
    kind="ai_recommendation", table="ai_recommendations", collection="aiRecommendations",
    label="המלצות AI", title_field="recommendationType", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("recommendationType"),
        field("content"),
        field("actionItems", LIST),
        field("createdBy"),
        field("createdAt"),
    ],
))

WHATSAPP_MESSAGE = register(EntityCodec(
    kind="whatsapp_message", table="whatsapp_messages", collection="whatsappMessages",
    label="הודעת וואטסאפ", title_field="purpose", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("purpose"),
        field("messages", LIST),
        field("createdBy"),
        field("createdAt"),
    ],
))

STRATEGY_PLAN = register(EntityCodec(
    kind="strategy_plan", table="strategy_plans", collection="strategyPlans",
    label="תוכנית אסטרטגית", title_field="title", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("title"),
        field("summary"),
        field("planData", JSON),
        field("createdBy"),
        field("createdAt"),
    ],
))

COMPETITOR_REPORT = register(EntityCodec(
    kind="competitor_report", table="competitor_reports", collection="competitorReports",
    label="דוח מתחרים", title_field="businessName", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("businessName"),
        field("competitors", LIST),
        field("analysis"),
        field("createdBy"),
        field("createdAt"),
    ],
))

SIGNALS_PERSONALITY = register(EntityCodec(
    kind="signals_personality", table="signals_personality", collection="signalsPersonality",
    label="ניתוח אישיות", title_field="subjectName", parent_fields=("clientId", "leadId"),
    fields=[
        field("id"),
        field("leadId", OPTIONAL),
        field("clientId", OPTIONAL),
        field("analysisId"),
        field("subjectName"),
        field("subjectEmail"),
        field("subjectPhone", OPTIONAL),
        field("scores", JSON),
        field("primaryArchetype"),
        field("secondaryArchetype"),
        field("confidenceLevel"),
        field("churnRisk"),
        field("smartTags", LIST),
        field("userReport"),
        field("businessReport"),
        field("salesCheatSheet", JSON),
        field("retentionCheatSheet", JSON),
        field("resultUrl"),
        field("lang"),
        field("questionnaireVersion"),
        field("receivedAt"),
        field("updatedAt"),
    ],
))

# ══════════════════════════════════════════════════════════════
# WORKSPACE (calendar, ideas, knowledge base)
# ══════════════════════════════════════════════════════════════

CALENDAR_EVENT = register(EntityCodec(
    kind="calendar_event", table="calendar_events", collection="calendarEvents",
    label="אירוע", title_field="title",
    fields=[
        field("id"),
        field("title"),
        field("eventType"),
        field("startTime"),
        field("endTime"),
        field("allDay", BOOLEAN),
        field("description"),
        field("clientId", OPTIONAL),
        field("leadId", OPTIONAL),
        field("createdBy"),
        field("createdByName"),
        field("createdAt"),
    ],
))

IDEA = register(EntityCodec(
    kind="idea", table="ideas", collection="ideas",
    label="רעיון", title_field="title",
    fields=[
        field("id"),
        field("title"),
        field("description"),
        field("status"),
        field("priority"),
        field("clientId", OPTIONAL),
        field("category"),
        field("tags", LIST),
        field("createdBy"),
        field("createdByName"),
        field("sortOrder", INTEGER),
        field("createdAt"),
        field("updatedAt"),
    ],
))

KNOWLEDGE_ARTICLE = register(EntityCodec(
    kind="knowledge_article", table="knowledge_articles", collection="knowledgeArticles",
    label="מאמר ידע", title_field="title",
    fields=[
        field("id"),
        field("title"),
        field("content"),
        field("summary"),
        field("category"),
        field("tags", LIST),
        field("fileUrl", OPTIONAL),
        field("fileName", OPTIONAL),
        field("fileType", OPTIONAL),
        field("isAiGenerated", BOOLEAN),
        field("createdBy"),
        field("createdByName"),
        field("createdAt"),
        field("updatedAt"),
    ],
))

# ══════════════════════════════════════════════════════════════
# AUDIT / SETTINGS
# ══════════════════════════════════════════════════════════════

ACTIVITY = register(EntityCodec(
    kind="activity", table="activity_log", collection="activities",
    label="פעילות",
    fields=[
        field("id"),
        field("actionType"),
        field("entityType"),
        field("entityId", OPTIONAL),
        field("description"),
        field("userId", OPTIONAL),
        field("userName", OPTIONAL),
        field("createdAt"),
    ],
))

# Singleton row keyed by tenant_id; secret columns are read as presence flags.
SETTINGS = register(EntityCodec(
    kind="settings", table="settings", collection="settings",
    id_field=None, label="הגדרות",
    money_fields=("targetMonthlyRevenue", "targetMonthlyGrossProfit", "employeeSalary"),
    fields=[
        field("agencyName"),
        field("ownerName"),
        field("targetMonthlyRevenue", NUMBER),
        field("targetMonthlyGrossProfit", NUMBER),
        field("employeeSalary", NUMBER),
        field("isSalaried", BOOLEAN),
        field("logoUrl", OPTIONAL),
        field("hasCanvaKey", PRESENCE, column="canva_api_key"),
        field("hasGeminiKey", PRESENCE, column="gemini_api_key"),
        field("hasSignalsWebhookSecret", PRESENCE, column="signals_webhook_secret"),
    ],
))

SECRET_COLUMNS = {
    "canva_api_key": "hasCanvaKey",
    "gemini_api_key": "hasGeminiKey",
    "signals_webhook_secret": "hasSignalsWebhookSecret",
}

# The services catalogue is persisted on the settings row
SERVICES_COLUMN = "services"

# Kinds stored as lists in the cache, in load order
LIST_KINDS = (
    "client", "lead", "deal", "expense", "payment",
    "client_note", "lead_note", "call_transcript", "ai_recommendation",
    "whatsapp_message", "strategy_plan", "competitor_report",
    "retainer_change", "activity", "signals_personality",
    "calendar_event", "idea", "knowledge_article",
)
