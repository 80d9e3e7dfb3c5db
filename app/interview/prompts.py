from app.interview.plan import Question

INTERVIEWER_SYSTEM_PROMPT = """
You are Ava, a professional AI interviewer.

Your personality:
- Warm and encouraging
- Professional but conversational
- Patient and empathetic
- Clear in communication

Guidelines:
- Ask ONE question at a time
- Keep questions concise (1-2 sentences)
- Acknowledge responses without judging them
- Maintain a professional tone throughout
""".strip()

RECRUITER_SYSTEM_PROMPT = "You are an expert recruiter summarizing interview results. Be objective and constructive."


def build_opening_messages(candidate_name: str, job_title: str) -> list[dict]:
    name = candidate_name or "there"
    role = job_title or "this"
    prompt = f"""
Generate a warm opening message for {name} applying for the {role} position.

Requirements:
- Professional, welcoming, and brief (2-3 sentences)
- Explain that this is an AI-conducted interview
- Let them know they can take their time

Start with: "Hello {name}! Welcome to your interview for the {role} position."
""".strip()
    return [
        {"role": "system", "content": INTERVIEWER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def build_adapt_question_messages(question: Question, job_description: str) -> list[dict]:
    prompt = f"""
Adapt this interview question to be more relevant to the specific role:

Original Question: {question.text}
Job Description: {str(job_description or "")[:500]}

Requirements:
- Keep the core intent of the question
- Make it more specific to the role if possible
- Keep it concise (1-2 sentences)

Return ONLY the adapted question, nothing else.
""".strip()
    return [
        {"role": "system", "content": INTERVIEWER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def build_follow_up_messages(question: Question, answer_text: str) -> list[dict]:
    key_points = ", ".join(question.scoring_key_points) or "depth and relevance of the answer"
    system_prompt = f"""
You are conducting an interview. The candidate just answered a question.

Generate ONE follow-up question to:
1. Clarify their answer if it was vague
2. Dig deeper into their experience
3. Assess these criteria: {key_points}

Guidelines:
- Natural and conversational, one sentence
- Do not repeat the original question
- Focus on getting more specific information

Return ONLY the follow-up question, nothing else.
""".strip()
    return [
        {"role": "system", "content": system_prompt},
        {"role": "assistant", "content": f"Question: {question.text}"},
        {"role": "user", "content": f"Candidate's Response: {answer_text}"},
    ]


def build_transition_messages(previous_assessment: str, next_assessment: str) -> list[dict]:
    prompt = (
        f"Generate a brief transition message (1 sentence) moving from {previous_assessment} "
        f"to {next_assessment} assessment.\n\n"
        "Keep it natural and encouraging. Example: \"Great! Now let's move on to discuss your technical skills.\""
    )
    return [
        {"role": "system", "content": INTERVIEWER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def build_evaluation_messages(question: Question, answer_text: str) -> list[dict]:
    key_points = "\n".join(f"{i + 1}. {p}" for i, p in enumerate(question.scoring_key_points)) or "None provided"
    system_prompt = f"""
You are an expert interviewer evaluating a candidate's response.

Question: {question.text}
Question Type: {question.type}
Scoring Criteria:
{question.rubric or "Use your judgement of a strong answer."}

Key Points to Look For:
{key_points}

Evaluate the response on a scale of 0-100, considering:
- How well it addresses the key points
- Depth and quality of the answer
- Clarity of communication
- Relevance to the question

Return STRICT JSON only:
{{
  "score": 0-100,
  "strengths": ["string"],
  "weaknesses": ["string"],
  "recommendation": "hire | no-hire | maybe",
  "reasoning": "string"
}}
""".strip()
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": f"Candidate's Response:\n\n{answer_text}"},
    ]


def build_summary_messages(evaluation_summaries: list[str], overall_score: int) -> list[dict]:
    joined = "\n\n".join(s for s in evaluation_summaries if s) or "No evaluations recorded."
    prompt = f"""
Based on this interview evaluation, provide:
1. Overall assessment (2-3 sentences)
2. Key strengths (3-5 points)
3. Key weaknesses (2-3 points)
4. Final recommendation (hire/no-hire/maybe)
5. Insights (3-5 actionable insights)

Interview Evaluations:
{joined}

Overall Score: {overall_score}/100

Return STRICT JSON only in this format:
{{
  "overall_assessment": "string",
  "strengths": ["string"],
  "weaknesses": ["string"],
  "recommendation": "hire | no-hire | maybe",
  "insights": ["string"]
}}
""".strip()
    return [
        {"role": "system", "content": RECRUITER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
