"""Pipeline stages. Each one is also callable on its own."""

from .cover_letter import CoverLetterError, generate_cover_letter  # noqa: F401
from .experience_tailoring import (  # noqa: F401
    ExperienceTailoringError,
    apply_tailoring,
    tailor_work_experience,
)
from .jd_refinement import (  # noqa: F401
    JobDescriptionRefinementError,
    analyze_job_description,
    refine_job_description,
)
from .job_title import JobTitleError, generate_job_title, strip_markdown  # noqa: F401
from .keyword_extraction import KeywordExtractionError, extract_keywords  # noqa: F401
from .runtime import StageError  # noqa: F401
from .skills_extraction import SkillsExtractionError, extract_skills_from_jd  # noqa: F401
from .skills_sorting import SkillsSortError, reassemble_skill_groups, sort_skill_groups  # noqa: F401
from .summary import SummaryError, find_skill_violations, generate_summary  # noqa: F401
from .tech_stack_sorting import TechStackSortError, sort_tech_stack  # noqa: F401
