import random
import string
import time
from dataclasses import dataclass

from services.screening import models
from services.screening.scoring import Answer, QuestionWeight


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    category: models.QuestionCategory


CATEGORY_WEIGHTS: dict[models.QuestionCategory, float] = {
    models.QuestionCategory.social_communication: 2.0,
    models.QuestionCategory.repetitive_sensory: 1.5,
    models.QuestionCategory.developmental: 2.5,
    models.QuestionCategory.family_history: 6.0,
}

FAMILY_HISTORY_QUESTION_ID = "par_20"

_SC = models.QuestionCategory.social_communication
_RS = models.QuestionCategory.repetitive_sensory
_DEV = models.QuestionCategory.developmental
_FH = models.QuestionCategory.family_history


INDIVIDUAL_QUESTIONS: list[Question] = [
    Question("ind_1", "I find it difficult to make eye contact during conversations", _SC),
    Question("ind_2", "I prefer to stick to familiar routines and get upset when they change", _RS),
    Question("ind_3", "I have trouble understanding when someone is joking or being sarcastic", _SC),
    Question("ind_4", "Certain sounds, lights, or textures bother me more than they seem to bother others", _RS),
    Question("ind_5", "I find it hard to start or maintain conversations with others", _SC),
    Question("ind_6", "I have specific interests that I focus on intensely", _RS),
    Question("ind_7", "I struggle to understand what others are feeling just by looking at their faces", _SC),
    Question("ind_8", "I prefer to do activities alone rather than with others", _SC),
    Question("ind_9", "I engage in repetitive movements like hand-flapping or rocking", _RS),
    Question("ind_10", "I find it difficult to adapt to new social situations", _SC),
    Question("ind_11", "I have trouble knowing how to join a group conversation", _SC),
    Question("ind_12", "I need things to be organized in a very specific way", _RS),
    Question("ind_13", "I find it exhausting to be in social situations for long periods", _SC),
    Question("ind_14", "I tend to take things literally and miss implied meanings", _SC),
    Question("ind_15", "I experienced delays in learning to speak or communicate as a child", _DEV),
]

PARENT_QUESTIONS: list[Question] = [
    Question("par_1", "My child avoids making eye contact with others", _SC),
    Question("par_2", "My child becomes very upset when daily routines change", _RS),
    Question("par_3", "My child has difficulty understanding social cues like body language or tone of voice", _SC),
    Question("par_4", "My child is oversensitive to certain sounds, textures, or lights", _RS),
    Question("par_5", "My child rarely initiates conversations or interactions with peers", _SC),
    Question("par_6", "My child has intense, focused interests in specific topics or objects", _RS),
    Question("par_7", "My child struggles to make or keep friends", _SC),
    Question("par_8", "My child engages in repetitive behaviors like hand-flapping, spinning, or lining up toys", _RS),
    Question("par_9", "My child has difficulty understanding emotions in themselves or others", _SC),
    Question("par_10", "My child prefers to play alone rather than with other children", _SC),
    Question("par_11", "My child has trouble adapting to new environments or situations", _RS),
    Question("par_12", "My child rarely shares their interests or achievements with others", _SC),
    Question("par_13", "My child insists on sameness and becomes distressed by small changes", _RS),
    Question("par_14", "My child has difficulty with imaginative or pretend play", _SC),
    Question("par_15", "My child makes unusual or repetitive vocalizations", _RS),
    Question("par_16", "My child had delays in reaching developmental milestones (speaking, walking, etc.)", _DEV),
    Question("par_17", 'My child has difficulty taking turns or understanding social "rules"', _SC),
    Question("par_18", "My child shows little interest in what others are doing or saying", _SC),
    Question("par_19", "My child has unusual reactions to sensory experiences (seeking or avoiding)", _RS),
    Question(FAMILY_HISTORY_QUESTION_ID, "There is a family history of autism or related developmental conditions", _FH),
]

PATIENT_ID_PREFIXES = {
    models.AssessmentRole.individual: "SELF",
    models.AssessmentRole.parent: "CHILD",
    models.AssessmentRole.clinician: "PAT",
}

_BASE36 = string.digits + string.ascii_uppercase


def category_weight(category: models.QuestionCategory) -> float:
    return CATEGORY_WEIGHTS[models.QuestionCategory(category)]


def get_questions(role: models.AssessmentRole) -> list[Question]:
    """Individuals answer about themselves; parents and clinicians share the child bank."""
    if models.AssessmentRole(role) == models.AssessmentRole.individual:
        return INDIVIDUAL_QUESTIONS
    return PARENT_QUESTIONS


def get_question_weights(role: models.AssessmentRole) -> list[QuestionWeight]:
    return [QuestionWeight(id=q.id, weight=category_weight(q.category), category=q.category) for q in get_questions(role)]


def family_history_flag(answers: list[Answer]) -> bool:
    for answer in answers:
        if answer.question_id == FAMILY_HISTORY_QUESTION_ID:
            return models.AnswerValue(answer.value) == models.AnswerValue.always
    return False


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_patient_id(role: models.AssessmentRole) -> str:
    """e.g. ``CHILD-LXK2M3AB-7QZC``: role prefix, base36 millisecond timestamp, 4 random chars."""
    prefix = PATIENT_ID_PREFIXES[models.AssessmentRole(role)]
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"{prefix}-{timestamp}-{suffix}"
