"""Print the Supabase schema for the tryout engine (run it in the Supabase SQL Editor)."""
import os

from dotenv import load_dotenv

load_dotenv()

SCHEMA_SQL = """
-- Category tree (sections -> subjects -> sub-topics)
CREATE TABLE IF NOT EXISTS categories (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(200) NOT NULL,
    slug VARCHAR(100) NOT NULL UNIQUE,
    parent_id UUID REFERENCES categories(id) ON DELETE SET NULL,
    type VARCHAR(20) DEFAULT 'subject',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Question bank
CREATE TABLE IF NOT EXISTS questions (
    id UUID PRIMARY KEY,
    category_id UUID NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    question_text TEXT NOT NULL,
    question_type VARCHAR(20) NOT NULL CHECK (question_type IN ('multiple_choice', 'scale_tkp')),
    options JSONB NOT NULL,
    answer_key JSONB NOT NULL,
    discussion TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Package blueprints (quota per category)
CREATE TABLE IF NOT EXISTS exam_package_blueprints (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    package_id UUID NOT NULL,
    category_id UUID NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    question_count INT NOT NULL CHECK (question_count >= 0),
    position INT DEFAULT 0,
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(package_id, category_id)
);

-- Institution (master) blueprints
CREATE TABLE IF NOT EXISTS exam_blueprints (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    institution_id UUID NOT NULL,
    category_id UUID NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    question_count INT NOT NULL CHECK (question_count >= 0),
    passing_grade INT,
    position INT DEFAULT 0,
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(institution_id, category_id)
);

-- Tryout sessions
CREATE TABLE IF NOT EXISTS user_exam_sessions (
    id UUID PRIMARY KEY,
    user_id UUID NOT NULL,
    package_id UUID,
    question_ids JSONB NOT NULL,
    answers JSONB DEFAULT '{}'::jsonb,
    doubts JSONB DEFAULT '{}'::jsonb,
    status VARCHAR(20) DEFAULT 'in_progress',
    started_at TIMESTAMPTZ DEFAULT NOW(),
    deadline TIMESTAMPTZ,
    finished_at TIMESTAMPTZ,
    score_total DECIMAL(8,2),
    max_score DECIMAL(8,2),
    total_questions INT,
    correct_count INT,
    result JSONB
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_categories_parent_id ON categories(parent_id);
CREATE INDEX IF NOT EXISTS idx_questions_category_id ON questions(category_id);
CREATE INDEX IF NOT EXISTS idx_package_blueprints_package_id ON exam_package_blueprints(package_id);
CREATE INDEX IF NOT EXISTS idx_exam_blueprints_institution_id ON exam_blueprints(institution_id);
CREATE INDEX IF NOT EXISTS idx_user_exam_sessions_user_id ON user_exam_sessions(user_id);
"""


def statements(sql: str = SCHEMA_SQL) -> list:
    return [s.strip() for s in sql.split(";") if s.strip()]


def main() -> None:
    print("Initializing Supabase schema...")
    print(f"URL: {os.getenv('SUPABASE_URL')}")
    stmts = statements()
    for i, stmt in enumerate(stmts, 1):
        first = next(line for line in stmt.splitlines() if not line.startswith("--"))
        print(f"Statement {i}/{len(stmts)}: {first[:60]}...")
    print("\nNote: Due to Supabase client limitations, run this SQL in Supabase SQL Editor:")
    print(SCHEMA_SQL)


if __name__ == "__main__":
    main()
