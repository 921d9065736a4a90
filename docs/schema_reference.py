"""
Database Schema Reference
=========================

Quick reference for the tables the API and the worker share.
For the SQLAlchemy models, see: visual_translator/db/models.py

"""

# ============================================================================
# API_KEYS - Keys that act on behalf of a user
# ============================================================================
#
# | Column      | Type          | Constraints                 |
# |-------------|---------------|-----------------------------|
# | id          | UUID          | PRIMARY KEY                 |
# | key_hash    | VARCHAR(255)  | NOT NULL, UNIQUE, INDEX     |
# | key_prefix  | VARCHAR(12)   | NOT NULL, INDEX ("vtk_"+8)  |
# | name        | VARCHAR(100)  | NOT NULL                    |
# | user_id     | UUID          | NOT NULL, INDEX             |
# | is_active   | BOOLEAN       | NOT NULL, DEFAULT TRUE      |
# | created_at  | TIMESTAMP(TZ) | DEFAULT now()               |
# | expires_at  | TIMESTAMP(TZ) | NULLABLE                    |


# ============================================================================
# ASSETS - Uploaded files (written by the upload service, read here)
# ============================================================================
#
# | Column       | Type          | Constraints                  |
# |--------------|---------------|------------------------------|
# | id           | UUID          | PRIMARY KEY                  |
# | user_id      | UUID          | NOT NULL, INDEX              |
# | filename     | TEXT          | NOT NULL                     |
# | file_type    | VARCHAR(255)  | NOT NULL (MIME type)         |
# | file_size    | BIGINT        | NOT NULL                     |
# | storage_path | TEXT          | NOT NULL, UNIQUE (S3 key)    |
# | metadata     | JSONB         | NULLABLE                     |
# | created_at   | TIMESTAMP(TZ) | DEFAULT now()                |
#
# Relationships:
#   - jobs: ONE-TO-MANY -> ai_jobs.asset_id (CASCADE DELETE)


# ============================================================================
# AI_JOBS - One "translate this asset" request
# ============================================================================
#
# | Column        | Type             | Constraints                       |
# |---------------|------------------|-----------------------------------|
# | id            | UUID             | PRIMARY KEY                       |
# | user_id       | UUID             | NOT NULL, INDEX                   |
# | asset_id      | UUID             | NOT NULL, FK(assets.id), INDEX    |
# | job_type      | ENUM(job_type)   | NOT NULL, DEFAULT 'translate'     |
# | status        | ENUM(job_status) | NOT NULL, DEFAULT 'pending'       |
# | config        | JSONB            | NOT NULL                          |
# | error_message | TEXT             | NULLABLE (set when failed)        |
# | created_at    | TIMESTAMP(TZ)    | DEFAULT now(), INDEX              |
# | updated_at    | TIMESTAMP(TZ)    | DEFAULT now()                     |
# | started_at    | TIMESTAMP(TZ)    | NULLABLE (set when claimed)       |
# | completed_at  | TIMESTAMP(TZ)    | NULLABLE (set when terminal)      |
#
# Enums:
#   job_type:   'translate'
#   job_status: 'pending' | 'processing' | 'completed' | 'failed'
#
# Status transitions (forward only, each a conditional UPDATE):
#   pending    -> processing   worker claims the job
#   pending    -> failed       job config is invalid
#   processing -> completed    result stored in the same transaction
#   processing -> failed       any pipeline error, or stale sweep
#
# config:
#   {"sourceLanguage": "auto" | code, "targetLanguage": code,
#    "assetType": MIME type, "filename": original name}


# ============================================================================
# AI_RESULTS - The stored output of a completed job
# ============================================================================
#
# | Column             | Type          | Constraints                     |
# |--------------------|---------------|---------------------------------|
# | id                 | UUID          | PRIMARY KEY                     |
# | job_id             | UUID          | NOT NULL, FK(ai_jobs.id), UNIQUE|
# | result_type        | VARCHAR(50)   | NOT NULL, 'translation'         |
# | result_data        | JSONB         | NOT NULL (AnalysisResult)       |
# | confidence_score   | FLOAT         | NULLABLE (mean block confidence)|
# | processing_time_ms | INTEGER       | NULLABLE                        |
# | created_at         | TIMESTAMP(TZ) | DEFAULT now()                   |
#
# result_data (camelCase):
#   originalText, translatedText, sourceLanguage, targetLanguage,
#   confidence, detectedLanguage,
#   textBlocks: [{id, originalText, translatedText, confidence,
#                 ocrConfidence, position: {x, y, width, height}}],
#   metadata: {ocrEngine, translationEngine, processingTime, pages,
#              totalBlocks, documentType, filename}


# ============================================================================
# INDEXES
# ============================================================================
#
# | Table      | Index Name            | Columns                       |
# |------------|-----------------------|-------------------------------|
# | api_keys   | ix_api_keys_key_hash  | key_hash                      |
# | api_keys   | ix_api_keys_key_prefix| key_prefix                    |
# | ai_jobs    | ix_ai_jobs_status     | status                        |
# | ai_jobs    | ix_ai_jobs_created_at | created_at                    |
# | ai_jobs    | ix_ai_jobs_pending    | created_at WHERE pending      |


# ============================================================================
# ER DIAGRAM (Text)
# ============================================================================
#
#  ┌──────────────┐        ┌──────────────┐        ┌──────────────┐
#  │    assets    │ 1:N    │   ai_jobs    │ 1:1    │  ai_results  │
#  ├──────────────┤───────►├──────────────┤───────►├──────────────┤
#  │ id (PK)      │        │ id (PK)      │        │ id (PK)      │
#  │ user_id      │        │ asset_id (FK)│        │ job_id (FK)  │
#  │ file_type    │        │ status       │        │ result_data  │
#  │ storage_path │        │ config       │        │ confidence   │
#  └──────────────┘        └──────────────┘        └──────────────┘
#
#  api_keys.user_id scopes which assets and jobs a caller can see.
