"""Initial schema: users, progression, ledger, project graph, generated content.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            auth_uid VARCHAR(64) UNIQUE,
            email VARCHAR(320) UNIQUE,
            name VARCHAR(128) NOT NULL DEFAULT '',
            photo_url TEXT,
            college VARCHAR(128),
            major VARCHAR(128),
            onboarding_complete BOOLEAN NOT NULL DEFAULT false,
            onboarding_data JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Progression (one row per user) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progression (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
            current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
            total_coins BIGINT NOT NULL DEFAULT 0 CHECK (total_coins >= 0),
            streak_days INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_login_date DATE,
            last_activity TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- XP history (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_history (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL CHECK (amount > 0),
            reason VARCHAR(256) NOT NULL,
            source VARCHAR(32) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_history_user
        ON xp_history(user_id, created_at)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            rarity VARCHAR(16) NOT NULL,
            xp_bonus INTEGER NOT NULL DEFAULT 0,
            coin_bonus INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_achievements_user ON achievements(user_id)")

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL DEFAULT '',
            type VARCHAR(32) NOT NULL,
            data JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id)")

    # --- Leaderboard cache ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_cache (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            period VARCHAR(16) NOT NULL,
            category VARCHAR(16) NOT NULL,
            score BIGINT NOT NULL DEFAULT 0,
            rank INTEGER,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT leaderboard_cache_user_period_category_key UNIQUE (user_id, period, category)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_leaderboard_cache_lookup
        ON leaderboard_cache(period, category, rank)
    """)

    # --- Projects + prerequisite edges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id BIGSERIAL PRIMARY KEY,
            owner_id BIGINT REFERENCES users(id) ON DELETE CASCADE,
            slug VARCHAR(64) UNIQUE,
            title VARCHAR(256) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category VARCHAR(64) NOT NULL DEFAULT 'General',
            difficulty VARCHAR(32) NOT NULL DEFAULT 'Intermediate',
            xp_reward INTEGER NOT NULL DEFAULT 200,
            coin_reward INTEGER NOT NULL DEFAULT 50,
            time_estimate_hours INTEGER NOT NULL DEFAULT 10,
            required_skills JSONB NOT NULL DEFAULT '[]',
            tasks JSONB NOT NULL DEFAULT '[]',
            completion_count INTEGER NOT NULL DEFAULT 0,
            trending_score INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS project_prerequisites (
            project_id BIGINT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            prerequisite_id BIGINT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            PRIMARY KEY (project_id, prerequisite_id),
            CHECK (project_id <> prerequisite_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_project_prereqs_prereq
        ON project_prerequisites(prerequisite_id)
    """)

    # --- Per-user project state ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_project_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            project_id BIGINT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'locked'
                CHECK (status IN ('locked', 'unlocked', 'completed')),
            progress_percentage INTEGER NOT NULL DEFAULT 0,
            github_url TEXT,
            demo_url TEXT,
            submission_data JSONB NOT NULL DEFAULT '{}',
            unlocked_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            CONSTRAINT user_project_progress_user_project_key UNIQUE (user_id, project_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_project_progress_status
        ON user_project_progress(user_id, status)
    """)

    # --- Skills ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_skills (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            skill_name VARCHAR(128) NOT NULL,
            category VARCHAR(64) NOT NULL DEFAULT 'General',
            current_level VARCHAR(32) NOT NULL DEFAULT 'Beginner',
            target_level VARCHAR(32),
            proficiency_score INTEGER NOT NULL DEFAULT 0,
            importance_score INTEGER NOT NULL DEFAULT 3,
            is_gap BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT user_skills_user_skill_key UNIQUE (user_id, skill_name)
        )
    """)

    # --- Generation cache ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS generation_cache (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            artifact_type VARCHAR(32) NOT NULL,
            content_hash VARCHAR(64) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'ready')),
            artifact JSONB,
            source_ref TEXT,
            claimed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT generation_cache_key UNIQUE (user_id, artifact_type, content_hash)
        )
    """)

    # --- Roadmap nodes ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS roadmap_nodes (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            node_type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            position_x DOUBLE PRECISION NOT NULL DEFAULT 0,
            position_y DOUBLE PRECISION NOT NULL DEFAULT 0,
            status VARCHAR(16) NOT NULL DEFAULT 'locked',
            progress_percentage INTEGER NOT NULL DEFAULT 0,
            xp_reward INTEGER NOT NULL DEFAULT 100,
            coin_reward INTEGER NOT NULL DEFAULT 10,
            time_estimate_hours INTEGER NOT NULL DEFAULT 5,
            required_skills JSONB NOT NULL DEFAULT '[]',
            prerequisites JSONB NOT NULL DEFAULT '[]',
            difficulty VARCHAR(32) NOT NULL DEFAULT 'Intermediate',
            background_theme VARCHAR(32) NOT NULL DEFAULT 'grassland',
            order_index INTEGER NOT NULL DEFAULT 0,
            external_url TEXT,
            resource_links JSONB NOT NULL DEFAULT '[]',
            completed_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_roadmap_nodes_user
        ON roadmap_nodes(user_id, order_index)
    """)

    # --- Courses ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS courses (
            id BIGSERIAL PRIMARY KEY,
            title VARCHAR(256) NOT NULL,
            platform VARCHAR(64) NOT NULL DEFAULT 'Online',
            url TEXT NOT NULL DEFAULT '',
            duration_hours INTEGER NOT NULL DEFAULT 10,
            difficulty VARCHAR(32) NOT NULL DEFAULT 'Beginner',
            is_free BOOLEAN NOT NULL DEFAULT true,
            skills_covered JSONB NOT NULL DEFAULT '[]',
            rating DOUBLE PRECISION NOT NULL DEFAULT 4.5,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS courses CASCADE")
    op.execute("DROP TABLE IF EXISTS roadmap_nodes CASCADE")
    op.execute("DROP TABLE IF EXISTS generation_cache CASCADE")
    op.execute("DROP TABLE IF EXISTS user_skills CASCADE")
    op.execute("DROP TABLE IF EXISTS user_project_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS project_prerequisites CASCADE")
    op.execute("DROP TABLE IF EXISTS projects CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboard_cache CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_history CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progression CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
