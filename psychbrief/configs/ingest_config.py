from psychbrief.configs.prompts import PROMPT_ACTIONABILITY, PROMPT_EXTRACTION, PROMPT_RELEVANCE

BASE_TEMPERATURE = 0.0
BASE_MODEL = "gpt-4o-mini"

# Relevance, then actionability. Either one can end the article run with a skip.
GATES_MODULE = {
    "type": "module",
    "settings": {
        "name": "MODULE! Classification Gates",
        "steps": [
            {
                "type": "relevance_gate",
                "settings": {
                    "name": "Relevance Gate",
                    "model": BASE_MODEL,
                    "system_prompt": PROMPT_RELEVANCE,
                    "temperature": BASE_TEMPERATURE,
                }
            },
            {
                "type": "actionability_gate",
                "settings": {
                    "name": "Actionability Gate",
                    "model": BASE_MODEL,
                    "system_prompt": PROMPT_ACTIONABILITY,
                    "temperature": BASE_TEMPERATURE,
                }
            },
        ]
    }
}

EXTRACTION_STEPS = [
    {
        "type": "extraction",
        "settings": {
            "name": "Extraction",
            "model": BASE_MODEL,
            "system_prompt": PROMPT_EXTRACTION,
            "temperature": BASE_TEMPERATURE,
        }
    },
    {
        "type": "normalization",
        "settings": {"name": "Normalization"}
    },
    {
        "type": "persistence",
        "settings": {"name": "Persistence"}
    },
]

# Full batch ingestion: feed XML -> parsed articles -> gated -> stored
INGEST_PIPELINE_CONFIG = {
    "name": "PubMed_Ingestion_Run",
    "debug": False,
    "parallel": {"enabled": False, "max_workers": 4},
    "steps": [
        {
            "type": "dedup",
            "settings": {"name": "Dedup Check"}
        },
        GATES_MODULE,
        *EXTRACTION_STEPS,
    ],
}

# Single-abstract extraction (no gates), as served by POST /api/extract
EXTRACT_PIPELINE_CONFIG = {
    "name": "Single_Extraction_Run",
    "debug": False,
    "steps": [
        {
            "type": "dedup",
            "settings": {"name": "Dedup Check"}
        },
        *EXTRACTION_STEPS,
    ],
}
