"""Collaborator doubles for monitoring tests."""


class FakeTagDelivery:
    """Tag manager double recording every fired conversion."""

    def __init__(self, results=None, initialized=True, tag_fired=True):
        # One entry per firing attempt; the last entry repeats
        self.results = list(results) if results is not None else [True]
        self.initialized = initialized
        self.tag_fired = tag_fired
        self.calls = []
        self.validated_tags = []

    def get_status(self):
        return {"is_initialized": self.initialized, "container_id": "GTM-TEST"}

    def track_conversion(self, event, data):
        index = min(len(self.calls), len(self.results) - 1)
        self.calls.append((event, data))
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result

    def validate_tag_firing(self, tag_name):
        self.validated_tags.append(tag_name)
        return self.tag_fired


class AsyncFakeTagDelivery(FakeTagDelivery):
    """Same as FakeTagDelivery with coroutine methods."""

    async def track_conversion(self, event, data):
        return super().track_conversion(event, data)

    async def validate_tag_firing(self, tag_name):
        return super().validate_tag_firing(tag_name)


class FakeEnhancedConversions:
    """Enhanced conversion service double."""

    def __init__(self, enabled=True, compliant=True, payload=True, track_result=True):
        self.enabled = enabled
        self.compliant = compliant
        self.payload = payload
        self.track_result = track_result
        self.prepared = []
        self.tracked = []
        self.compliance_checks = []

    def get_status(self):
        return {"is_enabled": self.enabled}

    def prepare_enhanced_conversion(self, data, user_data, consent):
        self.prepared.append((data, user_data, consent))
        if not self.payload:
            return None
        return {**data, "enhanced_conversion_data": {"sha256_email_address": "hashed"}}

    def track_enhanced_conversion(self, payload):
        self.tracked.append(payload)
        return self.track_result

    def validate_privacy_compliance(self, user_data, consent):
        self.compliance_checks.append((user_data, consent))
        if self.compliant:
            return {"is_compliant": True, "errors": []}
        return {"is_compliant": False, "errors": ["Missing ad_storage consent"]}


class AsyncFakeEnhancedConversions(FakeEnhancedConversions):
    """Same as FakeEnhancedConversions with coroutine status and compliance checks."""

    async def get_status(self):
        return super().get_status()

    async def validate_privacy_compliance(self, user_data, consent):
        return super().validate_privacy_compliance(user_data, consent)


class FakeBookingFlow:
    """Booking flow double with a single active booking."""

    def __init__(self, state=None, tracked=None):
        self.state = state
        self.tracked = set(tracked or ())
        self.listeners = []

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners = [cb for cb in self.listeners if cb != listener]

    def get_current_booking_state(self):
        return self.state

    def get_current_step(self):
        return self.state.get("current_step") if self.state else None

    def is_conversion_tracked(self, event):
        return event in self.tracked

    def emit(self, event_name, data):
        for listener in list(self.listeners):
            listener(event_name, data)




class AsyncFakeBookingFlow(FakeBookingFlow):
    """Same as FakeBookingFlow with coroutine state queries."""

    async def get_current_booking_state(self):
        return super().get_current_booking_state()

    async def is_conversion_tracked(self, event):
        return super().is_conversion_tracked(event)
