from models.models import Broadcaster, Listener, ListenerRegistry
