from typing import Annotated

from fastapi import Depends

from deck_api.config import Settings, get_settings
from deck_api.services.quiz.factory import make_quiz_reconciler
from deck_api.services.quiz.reconciler import QuizReconciler


def get_quiz_reconciler() -> QuizReconciler:
    return make_quiz_reconciler()


SettingsDep = Annotated[Settings, Depends(get_settings)]
QuizReconcilerDep = Annotated[QuizReconciler, Depends(get_quiz_reconciler)]
