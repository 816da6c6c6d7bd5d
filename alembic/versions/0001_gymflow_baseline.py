from alembic import op

revision = "0001_gymflow_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(36) NOT NULL,
            email VARCHAR(255) NOT NULL,
            name VARCHAR(255) NOT NULL,
            password_hash VARCHAR(255),
            rut VARCHAR(20),
            qr_code VARCHAR(64) NOT NULL,
            role VARCHAR(20) DEFAULT 'USER' NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (id),
            UNIQUE (email),
            UNIQUE (rut),
            UNIQUE (qr_code)
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS gyms (
            id VARCHAR(36) NOT NULL,
            name VARCHAR(255) NOT NULL,
            address TEXT,
            max_capacity INTEGER NOT NULL,
            is_active BOOLEAN DEFAULT true NOT NULL,
            chain VARCHAR(100),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (id),
            CONSTRAINT ck_gyms_max_capacity CHECK (max_capacity >= 0)
        )
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_gyms_chain ON gyms(chain)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_gyms_is_active ON gyms(is_active)")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS memberships (
            id VARCHAR(36) NOT NULL,
            user_id VARCHAR(36) NOT NULL,
            type VARCHAR(50) DEFAULT 'BASIC' NOT NULL,
            status VARCHAR(20) DEFAULT 'ACTIVE' NOT NULL,
            start_date DATE NOT NULL,
            end_date DATE NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (id),
            UNIQUE (user_id),
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE CASCADE
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_memberships_status_end_date ON memberships(status, end_date)"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS membership_gyms (
            membership_id VARCHAR(36) NOT NULL,
            gym_id VARCHAR(36) NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (membership_id, gym_id),
            FOREIGN KEY (membership_id) REFERENCES memberships (id) ON DELETE CASCADE,
            FOREIGN KEY (gym_id) REFERENCES gyms (id) ON DELETE CASCADE
        )
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS checkins (
            id VARCHAR(36) NOT NULL,
            gym_id VARCHAR(36) NOT NULL,
            user_id VARCHAR(36),
            checked_in TIMESTAMP NOT NULL,
            checked_out TIMESTAMP,
            event_id VARCHAR(128),
            checkout_event_id VARCHAR(128),
            source VARCHAR(20) DEFAULT 'api' NOT NULL,
            PRIMARY KEY (id),
            UNIQUE (event_id),
            UNIQUE (checkout_event_id),
            FOREIGN KEY (gym_id) REFERENCES gyms (id) ON DELETE CASCADE,
            FOREIGN KEY (user_id) REFERENCES users (id) ON DELETE SET NULL,
            CONSTRAINT ck_checkins_checkout_after_checkin
                CHECK (checked_out IS NULL OR checked_out >= checked_in)
        )
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_checkins_gym_checked_out ON checkins(gym_id, checked_out)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_checkins_gym_checked_in ON checkins(gym_id, checked_in)"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_checkins_user_checked_out ON checkins(user_id, checked_out)"
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS uq_checkins_active_session
        ON checkins(gym_id, user_id)
        WHERE checked_out IS NULL AND user_id IS NOT NULL
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS checkins")
    op.execute("DROP TABLE IF EXISTS membership_gyms")
    op.execute("DROP TABLE IF EXISTS memberships")
    op.execute("DROP TABLE IF EXISTS gyms")
    op.execute("DROP TABLE IF EXISTS users")
