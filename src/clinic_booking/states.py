from aiogram.fsm.state import State, StatesGroup


class BookingStates(StatesGroup):
    awaiting_name = State()     # регистрация: имя
    awaiting_phone = State()    # регистрация: телефон (текст или контакт)
    choosing_month = State()
    choosing_day = State()
    choosing_time = State()
    choosing_service = State()
    confirming = State()


class AdminStates(StatesGroup):
    commenting = State()        # ввод комментария к записи
