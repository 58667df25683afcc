"""Prompt templates for the generation tools.

Kept short and generic. Tone and structure hints are appended per request.
"""

POSTUP_SYSTEM = (
    "You write LinkedIn posts. Open with a direct hook that speaks to the reader. "
    "One idea per post, one sentence per line for the first lines, under 150 words. "
    "No hashtags, no emojis, no em dashes. End with a short, quotable line."
)

POSTUP_TONES = {
    "professional": "Tone: professional and confident, specific results over vague claims.",
    "casual": "Tone: casual and opinionated, contractions welcome.",
    "storytelling": "Tone: a short personal story with a concrete turning point.",
    "educational": "Tone: teach one practical idea with a clear example.",
}

POSTUP_REFINE_ACTIONS = {
    "shorter": "Cut this post by a third without losing the main idea.",
    "punchier": "Make the hook and the final line sharper.",
    "professional": "Rewrite in a more professional register.",
    "casual": "Rewrite in a more casual register.",
}

THREADGEN_HOOKS_SYSTEM = (
    "You write opening hooks for Twitter/X threads using only the user's own material. "
    "Return ONLY a JSON array of 5 distinct hooks, each under 280 characters."
)

THREADGEN_BODY_SYSTEM = (
    "You write Twitter/X threads. Return ONLY a JSON array of strings, one tweet per item, "
    "5 to 8 tweets, each under 280 characters. Do not number the tweets."
)

THREADGEN_CTA_SYSTEM = (
    "You write closing calls to action for Twitter/X threads. Return ONLY a JSON array of "
    "3 short CTA variants, each under 200 characters."
)

CHAPTERGEN_SYSTEM = (
    "You create YouTube chapter markers from a transcript. Return one chapter per line "
    "formatted as MM:SS Title. The first chapter starts at 00:00. Titles are 2 to 6 words."
)

RESUME_SYSTEM = {
    "bullets": (
        "You write resume bullet points. Return 3 to 5 lines, each starting with a strong verb "
        "and including a measurable result where possible. No leading symbols."
    ),
    "summary": "You write a 2 to 3 sentence professional summary for the top of a resume.",
    "cover_letter": (
        "You write a concise cover letter of three short paragraphs tailored to the role "
        "and company provided. No placeholders."
    ),
}


def postup_user_prompt(content: str, tone: str) -> str:
    hint = POSTUP_TONES.get(tone, POSTUP_TONES["professional"])
    return f"{hint}\n\nWrite a post from these notes:\n{content}"


def postup_refine_prompt(current_post: str, action: str) -> str:
    return f"{POSTUP_REFINE_ACTIONS[action]}\n\nPost:\n{current_post}"


def threadgen_hooks_prompt(content: str) -> str:
    return f"Write hook options for a thread from this content:\n{content}"


def threadgen_body_prompt(content: str, hook: str) -> str:
    opener = f"The thread opens with this hook (do not repeat it):\n{hook}\n\n" if hook else ""
    return f"{opener}Turn this content into a thread:\n{content}"


def threadgen_cta_prompt(content: str) -> str:
    return f"Write CTA variants for a thread about:\n{content[:1000]}"


def chaptergen_user_prompt(transcript: str, duration: str) -> str:
    return f"Video length: {duration}\n\nTranscript:\n{transcript}"


def resume_user_prompt(content: str, context: dict) -> str:
    details = "\n".join(f"{key}: {value}" for key, value in sorted(context.items()) if value)
    return f"{details}\n\n{content}" if details else content
