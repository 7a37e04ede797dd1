"""Print the Supabase schema for the trial engine (run it in the Supabase SQL Editor)."""
import os
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")

# SQL schema
SCHEMA_SQL = """
-- Users (managed by the account pages; the engine only reads/updates exp)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username VARCHAR(50) NOT NULL,
    email VARCHAR(255),
    exp NUMERIC DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Trials
CREATE TABLE IF NOT EXISTS trials (
    id TEXT PRIMARY KEY,
    trial_title TEXT NOT NULL,
    time INT NOT NULL CHECK (time > 0),
    allscore NUMERIC NOT NULL DEFAULT 0,
    exp_gain NUMERIC DEFAULT 0,
    first_exp NUMERIC DEFAULT 0,
    hd_condition TEXT,
    hd_achv_id TEXT
);

-- Questions
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    trial_id TEXT NOT NULL REFERENCES trials(id) ON DELETE CASCADE,
    qcontent TEXT NOT NULL,
    qtype VARCHAR(10) NOT NULL CHECK (qtype IN ('Single', 'Multiple', 'Input')),
    qselection JSONB DEFAULT '[]',
    qcorrectanswer JSONB NOT NULL,
    qpoints NUMERIC DEFAULT 1 CHECK (qpoints >= 0)
);

-- Attempts
CREATE TABLE IF NOT EXISTS trial_data (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    trial_id TEXT NOT NULL REFERENCES trials(id) ON DELETE CASCADE,
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ NOT NULL,
    status VARCHAR(10) DEFAULT 'Ongoing',
    score NUMERIC,
    time_concluded INT,
    star INT CHECK (star IS NULL OR star BETWEEN 0 AND 3),
    eval_score NUMERIC(5,1),
    question_order JSONB,
    draft_answers JSONB
);

-- Answer records (one per question per attempt)
CREATE TABLE IF NOT EXISTS q_data (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    q_id TEXT NOT NULL REFERENCES questions(id) ON DELETE CASCADE,
    t_dataid UUID NOT NULL REFERENCES trial_data(id) ON DELETE CASCADE,
    uanswer JSONB,
    upoints NUMERIC DEFAULT 0
);

-- Attempts started per user and trial (attempt cap, first-attempt bonus)
CREATE TABLE IF NOT EXISTS trial_progress (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    trial_id TEXT NOT NULL REFERENCES trials(id) ON DELETE CASCADE,
    attempts INT DEFAULT 0,
    PRIMARY KEY (user_id, trial_id)
);

-- Hidden achievements
CREATE TABLE IF NOT EXISTS achievements (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    image TEXT
);

CREATE TABLE IF NOT EXISTS user_acv (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    achv_id TEXT NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
    time_date TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(user_id, achv_id)
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_questions_trial_id ON questions(trial_id);
CREATE INDEX IF NOT EXISTS idx_trial_data_user_trial ON trial_data(user_id, trial_id);
CREATE INDEX IF NOT EXISTS idx_trial_data_status ON trial_data(status);
CREATE INDEX IF NOT EXISTS idx_q_data_t_dataid ON q_data(t_dataid);
"""


def main():
    statements = [s.strip() for s in SCHEMA_SQL.split(';') if s.strip()]
    print("Trial engine schema")
    print(f"URL: {SUPABASE_URL or '(SUPABASE_URL not set)'}")
    print(f"{len(statements)} statements:")
    for i, stmt in enumerate(statements, 1):
        first_line = next(line for line in stmt.splitlines() if not line.startswith("--"))
        print(f"  {i:2d}. {first_line[:70]}")
    print("\nNote: Supabase's client cannot run DDL; paste this SQL into the Supabase SQL Editor:")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
