# db/schema.py
from __future__ import annotations

# Table -> column list. Both stores accept exactly these columns.
TABLES: dict[str, tuple[str, ...]] = {
    "stage": (
        "id", "name", "format", "participant_count", "seeding",
        "settings", "status", "winner_id",
    ),
    "participant": ("stage_id", "id", "name", "seed_position"),
    "stage_group": ("stage_id", "id", "kind", "number"),
    "stage_round": ("stage_id", "id", "group_id", "number"),
    "stage_match": (
        "stage_id", "id", "group_id", "round_id", "position",
        "slot1_origin", "slot1_source", "slot1_participant", "slot1_settled",
        "slot2_origin", "slot2_source", "slot2_participant", "slot2_settled",
        "status", "score1", "score2", "winner_slot",
        "forward_winner_match", "forward_winner_slot",
        "forward_loser_match", "forward_loser_slot",
    ),
    "stage_alias": ("external_id", "stage_id"),
}

# Tables whose id is assigned by the store (AUTO_INCREMENT).
AUTO_ID_TABLES: dict[str, str] = {"stage": "id"}

UNIQUE_KEYS: dict[str, tuple[tuple[str, ...], ...]] = {
    "stage": (("id",),),
    "participant": (("stage_id", "id"),),
    "stage_group": (("stage_id", "id"),),
    "stage_round": (("stage_id", "id"),),
    "stage_match": (("stage_id", "id"),),
    "stage_alias": (("external_id",), ("stage_id",)),
}


DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS stage (
      id                BIGINT UNSIGNED NOT NULL AUTO_INCREMENT,
      name              VARCHAR(128) NOT NULL,
      format            VARCHAR(32)  NOT NULL,
      participant_count INT          NOT NULL,
      seeding           VARCHAR(32)  NOT NULL DEFAULT 'natural',
      settings          JSON         NULL,
      status            VARCHAR(16)  NOT NULL DEFAULT 'pending',
      winner_id         INT          NULL,
      created_at        DATETIME(6)  NOT NULL DEFAULT CURRENT_TIMESTAMP(6),
      updated_at        DATETIME(6)  NOT NULL DEFAULT CURRENT_TIMESTAMP(6) ON UPDATE CURRENT_TIMESTAMP(6),
      PRIMARY KEY (id)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS participant (
      stage_id      BIGINT UNSIGNED NOT NULL,
      id            INT          NOT NULL,
      name          VARCHAR(128) NOT NULL,
      seed_position INT          NOT NULL,
      PRIMARY KEY (stage_id, id),
      CONSTRAINT fk_participant_stage FOREIGN KEY (stage_id) REFERENCES stage (id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_group (
      stage_id BIGINT UNSIGNED NOT NULL,
      id       INT         NOT NULL,
      kind     VARCHAR(4)  NOT NULL,
      number   INT         NOT NULL,
      PRIMARY KEY (stage_id, id),
      CONSTRAINT fk_group_stage FOREIGN KEY (stage_id) REFERENCES stage (id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_round (
      stage_id BIGINT UNSIGNED NOT NULL,
      id       INT NOT NULL,
      group_id INT NOT NULL,
      number   INT NOT NULL,
      PRIMARY KEY (stage_id, id),
      CONSTRAINT fk_round_stage FOREIGN KEY (stage_id) REFERENCES stage (id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_match (
      stage_id             BIGINT UNSIGNED NOT NULL,
      id                   INT         NOT NULL,
      group_id             INT         NOT NULL,
      round_id             INT         NOT NULL,
      position             INT         NOT NULL,
      slot1_origin         VARCHAR(16) NOT NULL,
      slot1_source         INT         NULL,
      slot1_participant    INT         NULL,
      slot1_settled        TINYINT(1)  NOT NULL DEFAULT 0,
      slot2_origin         VARCHAR(16) NOT NULL,
      slot2_source         INT         NULL,
      slot2_participant    INT         NULL,
      slot2_settled        TINYINT(1)  NOT NULL DEFAULT 0,
      status               VARCHAR(16) NOT NULL DEFAULT 'waiting',
      score1               INT         NULL,
      score2               INT         NULL,
      winner_slot          TINYINT     NULL,
      forward_winner_match INT         NULL,
      forward_winner_slot  TINYINT     NULL,
      forward_loser_match  INT         NULL,
      forward_loser_slot   TINYINT     NULL,
      PRIMARY KEY (stage_id, id),
      KEY ix_match_round (stage_id, round_id, position),
      CONSTRAINT fk_match_stage FOREIGN KEY (stage_id) REFERENCES stage (id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
    """
    CREATE TABLE IF NOT EXISTS stage_alias (
      external_id VARCHAR(191)    NOT NULL,
      stage_id    BIGINT UNSIGNED NOT NULL,
      created_at  DATETIME(6)     NOT NULL DEFAULT CURRENT_TIMESTAMP(6),
      PRIMARY KEY (external_id),
      UNIQUE KEY ux_alias_stage (stage_id),
      CONSTRAINT fk_alias_stage FOREIGN KEY (stage_id) REFERENCES stage (id) ON DELETE CASCADE
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
    """,
)
