"""
Strategy Compiler
=================

Turns a ``TypeDescriptor`` into an executable ``CopyStrategy``.

For field-walked types the compiler generates a dedicated Python
function per concrete type, unrolled over that type's slot fields, and
builds it with ``compile``/``exec``. Each slot is read and written
through its member descriptor, so the walk never goes through
``__getattr__``/``__setattr__`` or properties. Instance ``__dict__``
contents are walked per instance.

Frozen dataclasses get a generated ``split``/``assemble`` pair: ``split``
lists the instance's state and ``assemble`` builds the copy from the
copied children, which the engine drives bottom-up without recursion.
``split`` is guarded the way an optimizing runtime guards a specialized
function: when every field is declared with a safe type, a cheap type
check on each field value lets it hand back the original instance
untouched; on guard failure it falls through to the generic per-field
path.

If code generation fails for a type, an interpreted closure with the
same semantics is used instead.

Usage:
    >>> compiler = StrategyCompiler(TypeClassifier(), engine)
    >>> strategy = compiler.compile(Node)
    >>> strategy.kind
    'generated'
"""

import copyreg
import logging
from typing import Any, Callable, Dict, Optional, Set

from clonepy.analysis.type_classifier import (
    Category,
    CopyHook,
    TypeClassifier,
    TypeDescriptor,
)
from clonepy.compiler import builtin_strategies
from clonepy.compiler.copy_strategy import CopyStrategy, WorkItem

logger = logging.getLogger(__name__)

_UNSET = object()


class StrategyCompiler:
    """
    Builds one ``CopyStrategy`` per concrete type.

    ``linker`` is the engine object providing ``link``, ``link_field``,
    ``materialize`` and ``shallow_value``; generated code binds to those
    methods directly.
    """

    CODEGEN_ENABLED = True

    def __init__(self, classifier: TypeClassifier, linker: Any, codegen: Optional[bool] = None):
        self.classifier = classifier
        self.linker = linker
        self.codegen = self.CODEGEN_ENABLED if codegen is None else codegen
        self._degraded: Set[type] = set()
        self.stats = {
            'compiled': 0,
            'generated': 0,
            'interpreted': 0,
            'codegen_failures': 0,
            'degraded_types': 0,
        }

    def compile(self, cls: type) -> CopyStrategy:
        descriptor = self.classifier.describe(cls)
        category = descriptor.category

        if category == Category.ALWAYS_IGNORED:
            strategy = CopyStrategy(descriptor=descriptor, kind='ignored')
        elif category == Category.SAFE_SHARE:
            strategy = CopyStrategy(descriptor=descriptor, kind='shared')
        elif category == Category.VALUE_AGGREGATE:
            strategy = self._value_strategy(descriptor)
        elif category == Category.FUNCTION_REFERENCE:
            strategy = builtin_strategies.function_strategy(descriptor, self.linker)
        elif category == Category.ARRAY:
            strategy = builtin_strategies.array_strategy(
                descriptor, self.linker, self._attribute_walkers(descriptor))
        elif category == Category.ASSOCIATIVE_CONTAINER:
            strategy = builtin_strategies.container_strategy(
                descriptor, self.linker, self._attribute_walkers(descriptor))
        elif descriptor.hook == CopyHook.DEEPCOPY:
            strategy = self._deepcopy_strategy(descriptor)
        elif descriptor.hook == CopyHook.REDUCE:
            strategy = self._reduce_strategy(descriptor)
        else:
            strategy = self._aggregate_strategy(descriptor)

        self.stats['compiled'] += 1
        logger.debug(f"Compiled {strategy.kind} strategy for {descriptor.name} ({category.name})")
        return strategy

    # ------------------------------------------------------------------
    # Reference aggregates
    # ------------------------------------------------------------------

    def _aggregate_strategy(self, descriptor: TypeDescriptor) -> CopyStrategy:
        cls = descriptor.cls
        new = cls.__new__
        walk, walk_shallow = self._walkers(descriptor)

        def allocate(source, state):
            return new(cls)

        return CopyStrategy(
            descriptor=descriptor,
            kind='generated' if self._is_generated(walk) else 'interpreted',
            allocate=allocate,
            fill=walk,
            fill_shallow=walk_shallow,
        )

    def _attribute_walkers(self, descriptor: TypeDescriptor):
        """Walker pair for instance attributes of array/container subclasses."""
        if not descriptor.has_fields:
            return None, None
        return self._walkers(descriptor)

    def _walkers(self, descriptor: TypeDescriptor):
        if self.codegen:
            try:
                walkers = (
                    self._generate_walker(descriptor, shallow=False),
                    self._generate_walker(descriptor, shallow=True),
                )
                self.stats['generated'] += 1
                return walkers
            except Exception as exc:
                self.stats['codegen_failures'] += 1
                logger.debug(f"Code generation failed for {descriptor.name}: {exc!r}; interpreting")
        self.stats['interpreted'] += 1
        return self._interpreted_walkers(descriptor)

    @staticmethod
    def _is_generated(func: Callable) -> bool:
        return func.__code__.co_filename.startswith('<clonepy-')

    def _generate_walker(self, descriptor: TypeDescriptor, shallow: bool) -> Callable:
        events = descriptor.event_fields
        namespace: Dict[str, Any] = {
            '_link_field': self.linker.link_field,
            '_shallow_value': self.linker.shallow_value,
            '_events': events,
        }
        if shallow:
            lines = ['def walk(source, target):']
            convert = '_shallow_value(value)'
        else:
            lines = ['def walk(source, target, state, stack):']
            convert = '_link_field(value, state, stack)'

        for i, f in enumerate(descriptor.slot_fields):
            namespace[f'_get{i}'] = f.member.__get__
            namespace[f'_set{i}'] = f.member.__set__
            if f.name in events:
                lines.append(f'    _set{i}(target, None)')
                continue
            lines += [
                '    try:',
                f'        value = _get{i}(source)',
                '    except AttributeError:',
                '        pass',
                '    else:',
                f'        _set{i}(target, {convert})',
            ]

        if descriptor.has_dict:
            lines.append('    fields = target.__dict__')
            for name in sorted(events):
                lines.append(f'    fields.pop({name!r}, None)')
            lines.append('    for name, value in source.__dict__.items():')
            if events:
                lines += [
                    '        if name in _events:',
                    '            continue',
                ]
            lines.append(f'        fields[name] = {convert}')

        if len(lines) == 1:
            lines.append('    pass')

        variant = 'shallow' if shallow else 'deep'
        code = compile('\n'.join(lines) + '\n',
                       f'<clonepy-{variant}:{descriptor.name}>', 'exec')
        exec(code, namespace)
        return namespace['walk']

    def _interpreted_walkers(self, descriptor: TypeDescriptor):
        slots = [(f.name, f.member.__get__, f.member.__set__) for f in descriptor.slot_fields]
        events = descriptor.event_fields
        has_dict = descriptor.has_dict
        link_field = self.linker.link_field
        shallow_value = self.linker.shallow_value

        def copy_fields(source, target, convert):
            for name, get, put in slots:
                if name in events:
                    put(target, None)
                    continue
                try:
                    value = get(source)
                except AttributeError:
                    continue
                put(target, convert(value))
            if has_dict:
                fields = target.__dict__
                for name in events:
                    fields.pop(name, None)
                for name, value in source.__dict__.items():
                    if name not in events:
                        fields[name] = convert(value)

        def walk(source, target, state, stack):
            copy_fields(source, target, lambda value: link_field(value, state, stack))

        def walk_shallow(source, target):
            copy_fields(source, target, shallow_value)

        return walk, walk_shallow

    def _deepcopy_strategy(self, descriptor: TypeDescriptor) -> CopyStrategy:
        """The type copies itself; it shares our identity map as its memo."""

        def allocate(source, state):
            return source.__deepcopy__(state.memo)

        return CopyStrategy(descriptor=descriptor, kind='deepcopy', allocate=allocate)

    def _reduce_strategy(self, descriptor: TypeDescriptor) -> CopyStrategy:
        """
        Types defining the pickle reduce protocol are rebuilt from their
        reduce value: the constructor call happens at allocation, state
        and items are linked when the instance is filled and applied by a
        follow-up work item once everything they reach has been copied.
        """
        cls = descriptor.cls
        reducer = copyreg.dispatch_table.get(cls)
        link = self.linker.link
        materialize = self.linker.materialize
        events = descriptor.event_fields

        def allocate(source, state):
            try:
                rv = reducer(source) if reducer is not None else source.__reduce_ex__(4)
            except TypeError as exc:
                self._degrade(cls, exc)
                return source
            if isinstance(rv, str):
                # Global singleton by name
                return source
            func, args = rv[0], rv[1]
            args = materialize(tuple(args), state) if args else ()
            target = func(*args)
            state.stash(target, tuple(rv[2:]))
            return target

        def apply(payload, target, state, stack):
            obj_state, listitems, dictitems = payload
            if obj_state is not None:
                setstate = getattr(target, '__setstate__', None)
                if setstate is not None:
                    setstate(obj_state)
                else:
                    slotstate = None
                    if isinstance(obj_state, tuple) and len(obj_state) == 2:
                        obj_state, slotstate = obj_state
                    if obj_state:
                        target.__dict__.update(obj_state)
                    if slotstate:
                        for name, value in slotstate.items():
                            setattr(target, name, value)
            for item in listitems:
                target.append(item)
            for key, value in dictitems:
                target[key] = value

        def fill(source, target, state, stack):
            rest = state.unstash(target, ())
            obj_state = rest[0] if len(rest) > 0 else None
            listitems = rest[1] if len(rest) > 1 else None
            dictitems = rest[2] if len(rest) > 2 else None

            mark = len(stack)
            if obj_state is not None:
                if events and isinstance(obj_state, dict):
                    obj_state = {k: v for k, v in obj_state.items() if k not in events}
                obj_state = link(obj_state, state, stack)
            items = [link(item, state, stack) for item in listitems] if listitems is not None else []
            pairs = [(link(key, state, stack), link(value, state, stack))
                     for key, value in dictitems] if dictitems is not None else []
            # Below everything just linked, so it runs after their fills
            stack.insert(mark, WorkItem((obj_state, items, pairs), target, apply))

        return CopyStrategy(descriptor=descriptor, kind='reduce', allocate=allocate, fill=fill)

    def _degrade(self, cls: type, exc: Exception):
        if cls in self._degraded:
            return
        self._degraded.add(cls)
        self.stats['degraded_types'] += 1
        logger.warning(
            f"{cls.__module__}.{cls.__qualname__} cannot be reduced ({exc}); "
            f"instances will be shared instead of copied"
        )

    # ------------------------------------------------------------------
    # Value aggregates
    # ------------------------------------------------------------------

    def _value_strategy(self, descriptor: TypeDescriptor) -> CopyStrategy:
        cls = descriptor.cls
        if not descriptor.frozen:
            if issubclass(cls, tuple):
                return builtin_strategies.tuple_strategy(
                    descriptor, self.linker, self._attribute_walkers(descriptor))
            return builtin_strategies.frozenset_strategy(
                descriptor, self.linker, self._attribute_walkers(descriptor))

        layout = _FrozenLayout(descriptor, self._safe_guard_types(descriptor))
        split = assemble = None
        if self.codegen:
            try:
                split, assemble = self._generate_builder(layout)
                self.stats['generated'] += 1
            except Exception as exc:
                self.stats['codegen_failures'] += 1
                logger.debug(f"Code generation failed for {descriptor.name}: {exc!r}; interpreting")
        if split is None:
            split, assemble = self._interpreted_builder(layout)
            self.stats['interpreted'] += 1
        return CopyStrategy(descriptor=descriptor, kind='frozen', split=split, assemble=assemble)

    def _safe_guard_types(self, descriptor: TypeDescriptor):
        """Declared field types when every one of them is safe, else None."""
        registry = self.classifier.registry
        declared = [f.declared_type for f in descriptor.dataclass_fields]
        if not declared or any(t is None or not registry.is_safe(t) for t in declared):
            return None
        return frozenset(registry.exact_safe_types) | frozenset(declared)

    def _generate_builder(self, layout: '_FrozenLayout'):
        names = layout.names
        namespace: Dict[str, Any] = {
            '_cls': layout.cls,
            '_new': layout.cls.__new__,
            '_setattr': object.__setattr__,
            '_getattr': getattr,
            '_type': type,
            '_safe': layout.guard_types,
            '_known': layout.known,
            '_UNSET': _UNSET,
        }

        lines = ['def values(source):', '    items = []']
        for i, name in enumerate(names):
            lines += [
                f'    v{i} = _getattr(source, {name!r}, _UNSET)',
                f'    if v{i} is not _UNSET:',
                f'        items.append(v{i})',
            ]
        if layout.has_dict:
            lines += [
                '    for name, value in source.__dict__.items():',
                '        if name not in _known:',
                '            items.append(value)',
            ]
        for i, (get, put) in enumerate(layout.extra_slots):
            namespace[f'_get{i}'] = get
            namespace[f'_set{i}'] = put
            lines += [
                '    try:',
                f'        items.append(_get{i}(source))',
                '    except AttributeError:',
                '        pass',
            ]
        lines.append('    return items')

        lines += ['', 'def split(source):']
        if layout.guarded:
            checks = [f'_type(_getattr(source, {name!r}, _UNSET)) in _safe' for name in names]
            if layout.has_dict:
                checks.append(f'len(source.__dict__) == {layout.dict_count}')
            lines += [
                f'    if {" and ".join(checks)}:',
                '        return None',
            ]
        lines.append('    return values(source)')

        lines += ['', 'def assemble(source, copies):']
        if not layout.events:
            lines += [
                '    for new, old in zip(copies, values(source)):',
                '        if new is not old:',
                '            break',
                '    else:',
                '        return source',
            ]
        lines += ['    result = _new(_cls)', '    copies = iter(copies)']
        for name in names:
            lines += [
                f'    if _getattr(source, {name!r}, _UNSET) is not _UNSET:',
                f'        _setattr(result, {name!r}, next(copies))',
            ]
        if layout.has_dict:
            lines += [
                '    fields = result.__dict__',
                '    for name in source.__dict__:',
                '        if name not in _known:',
                '            fields[name] = next(copies)',
            ]
        for i in range(len(layout.extra_slots)):
            lines += [
                '    try:',
                f'        _get{i}(source)',
                '    except AttributeError:',
                '        pass',
                '    else:',
                f'        _set{i}(result, next(copies))',
            ]
        for i, put in enumerate(layout.event_slots):
            namespace[f'_clear{i}'] = put
            lines.append(f'    _clear{i}(result, None)')
        lines.append('    return result')

        code = compile('\n'.join(lines) + '\n', f'<clonepy-frozen:{layout.name}>', 'exec')
        exec(code, namespace)
        return namespace['split'], namespace['assemble']

    def _interpreted_builder(self, layout: '_FrozenLayout'):
        cls = layout.cls
        names = layout.names
        known = layout.known
        has_dict = layout.has_dict
        extra_slots = layout.extra_slots
        guard_types = layout.guard_types if layout.guarded else None

        def values(source):
            items = []
            for name in names:
                value = getattr(source, name, _UNSET)
                if value is not _UNSET:
                    items.append(value)
            if has_dict:
                items.extend(value for name, value in source.__dict__.items() if name not in known)
            for get, _ in extra_slots:
                try:
                    items.append(get(source))
                except AttributeError:
                    pass
            return items

        def split(source):
            if (guard_types is not None
                    and all(type(getattr(source, name, _UNSET)) in guard_types for name in names)
                    and (not has_dict or len(source.__dict__) == layout.dict_count)):
                return None
            return values(source)

        def assemble(source, copies):
            if not layout.events and all(new is old for new, old in zip(copies, values(source))):
                return source
            result = cls.__new__(cls)
            copies = iter(copies)
            for name in names:
                if getattr(source, name, _UNSET) is not _UNSET:
                    object.__setattr__(result, name, next(copies))
            if has_dict:
                fields = result.__dict__
                for name in source.__dict__:
                    if name not in known:
                        fields[name] = next(copies)
            for get, put in extra_slots:
                try:
                    get(source)
                except AttributeError:
                    continue
                put(result, next(copies))
            for put in layout.event_slots:
                put(result, None)
            return result

        return split, assemble

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)


class _FrozenLayout:
    """
    Where a frozen dataclass keeps its state: the declared fields, any
    other instance ``__dict__`` entries (``__post_init__`` results,
    ``cached_property`` values) and slots the fields do not cover.
    """

    def __init__(self, descriptor: TypeDescriptor, guard_types):
        self.cls = descriptor.cls
        self.name = descriptor.name
        self.names = [f.name for f in descriptor.dataclass_fields]
        self.events = descriptor.event_fields
        self.known = frozenset(self.names) | self.events
        self.has_dict = descriptor.has_dict
        slots = descriptor.slot_fields
        slot_names = {f.name for f in slots}
        self.extra_slots = [(f.member.__get__, f.member.__set__) for f in slots
                            if f.name not in self.known]
        self.event_slots = [f.member.__set__ for f in slots if f.name in self.events]
        self.dict_count = sum(1 for name in self.names if name not in slot_names)
        self.guard_types = guard_types
        self.guarded = guard_types is not None and not self.extra_slots and not self.events
