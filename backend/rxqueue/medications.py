"""
药品目录 + 自动选药。

MEDS 的 key 就是 Lifefile 的 lfProductID。

自动选药规则：
  - GLP-1（semaglutide / tirzepatide）：按患者 GLP-1 用药史决定起始剂量，
    新患者（没用过，或者换了另一种药）一律从 initiation 剂量开始；
    多月套餐走 clinic 的 OrderSet。
  - 其他药：treatment 文本与药名做子串匹配，匹配不到再看 invoice 的 product。

tirzepatide 永远先于 semaglutide 判断，两族的 key 绝不混用。
"""

import re
from dataclasses import dataclass, field

GLP1_CATEGORY = 'GLP-1'
SUPPLIES_CATEGORY = 'Supplies'

FAMILY_SEMAGLUTIDE = 'semaglutide'
FAMILY_TIRZEPATIDE = 'tirzepatide'

# 每周一针，一个月按 4 针算
WEEKLY_DOSES_PER_MONTH = 4


@dataclass(frozen=True)
class SigTemplate:
    label: str
    sig: str
    quantity: str = '1'
    refills: str = '0'
    days_supply: int = 30
    phase: str = 'standard'
    target_dose_mg: float = None


@dataclass(frozen=True)
class MedicationConfig:
    key: str
    name: str
    strength: str
    form: str
    category: str
    form_label: str = ''
    vial_ml: float = None
    concentration_mg_ml: float = None
    sig_templates: tuple = ()
    default_sig: str = ''
    default_quantity: str = '1'
    default_refills: str = '0'

    @property
    def family(self):
        return get_glp1_family(self.name)

    @property
    def total_mg(self):
        if self.vial_ml is None or self.concentration_mg_ml is None:
            return None
        return self.vial_ml * self.concentration_mg_ml


@dataclass
class MedicationLine:
    medication_key: str
    sig: str
    quantity: str = '1'
    refills: str = '0'
    days_supply: int = 30

    def as_dict(self) -> dict:
        return {
            'medicationKey': self.medication_key,
            'sig': self.sig,
            'quantity': self.quantity,
            'refills': self.refills,
            'daysSupply': self.days_supply,
        }


@dataclass
class Glp1Preselection:
    family: str
    is_new_patient: bool
    one_month: MedicationLine
    order_set_name: str


@dataclass
class MedicationSelection:
    lines: list = field(default_factory=list)
    source: str = ''                 # glp1_preselection / order_set / treatment_match / product_match
    order_set_name: str = ''
    is_new_patient: bool = None


# ── Sig templates ──────────────────────────────────────────────────────────

TIRZEPATIDE_TEMPLATES = (
    SigTemplate(
        label='Initiation - Weeks 1-4 · 2.5 mg', phase='initiation', target_dose_mg=2.5, days_supply=28,
        sig='Inject 2.5 mg (0.25 mL / 25 units) subcutaneously once weekly for 4 weeks to initiate therapy. '
            'Inject on the same day each week. Rotate injection sites.',
    ),
    SigTemplate(
        label='Escalation - Weeks 5-8 · 5 mg', phase='escalation', target_dose_mg=5, days_supply=28,
        sig='Inject 5 mg (0.5 mL / 50 units) subcutaneously once weekly. '
            'Continue if tolerating initiation dose well. Monitor for GI side effects.',
    ),
    SigTemplate(
        label='Escalation - Weeks 9-12 · 7.5 mg', phase='escalation', target_dose_mg=7.5, days_supply=28,
        sig='Inject 7.5 mg (0.75 mL / 75 units) subcutaneously once weekly. '
            'Titrate only if prior dose was well tolerated. Report any persistent nausea or GI symptoms.',
    ),
    SigTemplate(
        label='Maintenance · 10 mg', phase='maintenance', target_dose_mg=10, days_supply=28,
        sig='Inject 10 mg (1 mL / 100 units) subcutaneously once weekly for maintenance therapy. '
            'Continue lifestyle modifications including diet and exercise.',
    ),
    SigTemplate(
        label='Maximum · 15 mg', phase='maintenance', target_dose_mg=15, days_supply=28,
        sig='Inject 15 mg (1.5 mL / 150 units) subcutaneously once weekly. Maximum dose. '
            'Monitor weight loss progress and metabolic parameters. May require two draws with a 100-unit syringe.',
    ),
)

# 2.5 mg/mL 浓度
SEMAGLUTIDE_TEMPLATES = (
    SigTemplate(
        label='Initiation - Weeks 1-4 · 0.25 mg', phase='initiation', target_dose_mg=0.25, days_supply=28,
        sig='Inject 0.25 mg (0.1 mL / 10 units) subcutaneously once weekly for 4 weeks to initiate therapy. '
            'Rotate injection sites between abdomen, thigh, and upper arm.',
    ),
    SigTemplate(
        label='Escalation - Weeks 5-8 · 0.5 mg', phase='escalation', target_dose_mg=0.5, days_supply=28,
        sig='Inject 0.5 mg (0.2 mL / 20 units) subcutaneously once weekly. '
            'Titrate only if tolerating previous dose well. Hydrate adequately.',
    ),
    SigTemplate(
        label='Escalation - Weeks 9-12 · 1 mg', phase='escalation', target_dose_mg=1, days_supply=28,
        sig='Inject 1 mg (0.4 mL / 40 units) subcutaneously once weekly. '
            'Continue lifestyle counseling. Monitor fasting glucose if diabetic.',
    ),
    SigTemplate(
        label='Maintenance · 1.7 mg', phase='maintenance', target_dose_mg=1.7, days_supply=28,
        sig='Inject 1.7 mg (0.68 mL / 68 units) subcutaneously once weekly for weight maintenance. '
            'Continue diet and exercise program.',
    ),
    SigTemplate(
        label='Maximum · 2.4 mg', phase='maintenance', target_dose_mg=2.4, days_supply=28,
        sig='Inject 2.4 mg (0.96 mL / 96 units) subcutaneously once weekly. '
            'Maximum dose for weight management. Monitor for efficacy and tolerance.',
    ),
)


def _tirzepatide(key, vial_ml, concentration=10):
    return MedicationConfig(
        key=key,
        name=f'TIRZEPATIDE/GLYCINE {concentration}/20MG/ML ({vial_ml}ML VIAL)',
        strength=f'{concentration}/20MG/ML',
        form='INJ', form_label='Injectable', category=GLP1_CATEGORY,
        vial_ml=vial_ml, concentration_mg_ml=concentration,
        sig_templates=TIRZEPATIDE_TEMPLATES if concentration == 10 else (),
    )


def _semaglutide(key, vial_ml, concentration=2.5):
    return MedicationConfig(
        key=key,
        name=f'SEMAGLUTIDE/GLYCINE {concentration}/20MG/ML ({vial_ml}ML VIAL)',
        strength=f'{concentration}/20MG/ML',
        form='INJ', form_label='Injectable', category=GLP1_CATEGORY,
        vial_ml=vial_ml, concentration_mg_ml=concentration,
        sig_templates=SEMAGLUTIDE_TEMPLATES if concentration == 2.5 else (),
    )


SYRINGE_KIT_KEY = '203194012'

_CATALOG = (
    _semaglutide('203448971', 1),
    _semaglutide('203448947', 2),
    _semaglutide('203449363', 3),
    _semaglutide('202851329', 2, concentration=5),
    _semaglutide('203448974', 5),
    _tirzepatide('203448972', 1),
    _tirzepatide('203448973', 2),
    _tirzepatide('203449364', 3),
    _tirzepatide('203449500', 4),
    _tirzepatide('203418602', 2, concentration=30),
    MedicationConfig(
        key='203087260', name='TESTOSTERONE CYPIONATE 200MG/ML (10ML VIAL) IN GRAPESEED OIL',
        strength='200MG/ML', form='INJ', form_label='Injectable', category='TRT',
        vial_ml=10, concentration_mg_ml=200,
        sig_templates=(
            SigTemplate(
                label='Standard - 100 mg Weekly', target_dose_mg=100, quantity='10', refills='1', days_supply=70,
                sig='Inject 100 mg (0.5 mL / 50 units) intramuscularly or subcutaneously once weekly. '
                    'Rotate injection sites between gluteal, deltoid, or vastus lateralis muscles.',
            ),
            SigTemplate(
                label='Twice Weekly - 50 mg', target_dose_mg=50, quantity='10', refills='1', days_supply=70,
                sig='Inject 50 mg (0.25 mL / 25 units) subcutaneously twice weekly (e.g., Monday and Thursday) '
                    'for stable testosterone levels. Use insulin syringe.',
            ),
        ),
    ),
    MedicationConfig(
        key='203194731', name='ENCLOMIPHENE CITRATE 25MG CAPSULE',
        strength='25MG', form='CAP', form_label='Capsule', category='Hormone Support',
        sig_templates=(
            SigTemplate(
                label='Standard - 25 mg Daily', target_dose_mg=25, quantity='30', refills='2', days_supply=30,
                sig='Take 1 capsule (25 mg) by mouth each morning with or without food. '
                    'Used for testosterone optimization.',
            ),
        ),
    ),
    MedicationConfig(
        key='203155227', name='ANASTROZOLE 0.5MG CAPSULE',
        strength='0.5MG', form='CAP', form_label='Capsule', category='Hormone Support',
        sig_templates=(
            SigTemplate(
                label='0.5 mg Twice Weekly', target_dose_mg=0.5, quantity='24', refills='1', days_supply=84,
                sig='Take 1 capsule (0.5 mg) by mouth every Monday and Thursday to manage estradiol levels. '
                    'Take with or without food.',
            ),
        ),
    ),
    MedicationConfig(
        key='203418853', name='SERMORELIN ACETATE 9MG (VIAL)',
        strength='9MG', form='INJ', form_label='Injectable', category='Peptide',
        sig_templates=(
            SigTemplate(
                label='Nightly - 0.3 mg', target_dose_mg=0.3, quantity='1', refills='1', days_supply=30,
                sig='Inject 0.3 mg (0.15 mL / 15 units) subcutaneously nightly before bed on an empty stomach '
                    '(at least 2-3 hours after last meal).',
            ),
        ),
    ),
    MedicationConfig(
        key='203087103', name='TADALAFIL 5MG TABLET',
        strength='5MG', form='TAB', form_label='Tablet', category='ED',
        default_sig='Take 1 tablet (5 mg) by mouth once daily at approximately the same time each day.',
        default_quantity='30', default_refills='2',
    ),
    MedicationConfig(
        key=SYRINGE_KIT_KEY, name='SYRINGE KIT (INSULIN SYRINGES + ALCOHOL PREP PADS)',
        strength='', form='KIT', form_label='Kit', category=SUPPLIES_CATEGORY,
        default_sig='Use supplies as directed for subcutaneous injection.',
    ),
)

MEDS = {med.key: med for med in _CATALOG}

SEMAGLUTIDE_KEYS = ('203448971', '203448947', '203449363', '202851329', '203448974')
TIRZEPATIDE_KEYS = ('203448972', '203448973', '203449364', '203449500', '203418602')
GLP1_KEYS = frozenset(SEMAGLUTIDE_KEYS + TIRZEPATIDE_KEYS)

_FAMILY_KEYS = {
    FAMILY_SEMAGLUTIDE: SEMAGLUTIDE_KEYS,
    FAMILY_TIRZEPATIDE: TIRZEPATIDE_KEYS,
}
_FAMILY_TEMPLATES = {
    FAMILY_SEMAGLUTIDE: SEMAGLUTIDE_TEMPLATES,
    FAMILY_TIRZEPATIDE: TIRZEPATIDE_TEMPLATES,
}


# ── Catalog helpers ────────────────────────────────────────────────────────

def get_medication(key):
    return MEDS.get(str(key or '').strip())


def is_glp1(key) -> bool:
    return str(key or '').strip() in GLP1_KEYS


def get_glp1_family(label):
    """
    treatment / 药名 → 'tirzepatide' / 'semaglutide' / None。

    tirzepatide 先判断：带 tirzepatide 的文本绝不能落到 semaglutide。
    """
    lowered = (label or '').lower()
    if 'tirzepatide' in lowered or 'mounjaro' in lowered or 'zepbound' in lowered:
        return FAMILY_TIRZEPATIDE
    if 'semaglutide' in lowered or 'ozempic' in lowered or 'wegovy' in lowered:
        return FAMILY_SEMAGLUTIDE
    return None


def find_order_set_by_name(order_sets, name):
    """名字忽略大小写 / 多余空格；先找完全相同，再找包含。"""
    if not name:
        return None

    def _norm(value):
        return ' '.join((value or '').lower().split())

    target = _norm(name)
    candidates = [s for s in order_sets if getattr(s, 'is_active', True)]
    for order_set in candidates:
        if _norm(_name_of(order_set)) == target:
            return order_set
    for order_set in candidates:
        if target in _norm(_name_of(order_set)):
            return order_set
    return None


def _name_of(order_set):
    if isinstance(order_set, dict):
        return order_set.get('name', '')
    return order_set.name


def _items_of(order_set):
    if isinstance(order_set, dict):
        return order_set.get('items') or []
    return order_set.items or []


# ── GLP-1 preselection ─────────────────────────────────────────────────────

def _parse_dose(value):
    match = re.search(r'\d+(?:\.\d+)?', str(value or ''))
    return float(match.group()) if match else None


def _template_for_dose(templates, dose):
    """找 target_dose <= 上次剂量 的最大模板。找不到返回 None。"""
    eligible = [t for t in templates if t.target_dose_mg is not None and t.target_dose_mg <= dose + 1e-9]
    if not eligible:
        return None
    return max(eligible, key=lambda t: t.target_dose_mg)


def _vial_for_dose(family, dose_mg):
    """标准浓度里最小的、够打 4 针的那支；都不够就给最大的。"""
    standard = [
        MEDS[key] for key in _FAMILY_KEYS[family]
        if MEDS[key].sig_templates
    ]
    standard.sort(key=lambda med: med.vial_ml)
    needed = dose_mg * WEEKLY_DOSES_PER_MONTH
    for med in standard:
        if med.total_mg >= needed - 1e-9:
            return med
    return standard[-1]


def build_order_set_name(family, plan_months, is_new_patient):
    suffix = 'New Patient' if is_new_patient else 'Continuing'
    return f"{family.capitalize()} {plan_months} Month - {suffix}"


def get_glp1_preselection(treatment, glp1_info=None, plan_months=1):
    """
    GLP-1 treatment 的预选。非 GLP-1 返回 None。

    glp1_info: {"used_glp1": bool, "glp1_type": str|None, "last_dose": str|None}
    """
    family = get_glp1_family(treatment)
    if family is None:
        return None

    glp1_info = glp1_info or {}
    used = bool(glp1_info.get('used_glp1'))
    prior_family = get_glp1_family(glp1_info.get('glp1_type') or '')
    last_dose = _parse_dose(glp1_info.get('last_dose'))

    templates = _FAMILY_TEMPLATES[family]
    template = None
    switching = prior_family is not None and prior_family != family
    if used and not switching and last_dose is not None:
        template = _template_for_dose(templates, last_dose)

    is_new_patient = template is None
    if template is None:
        template = templates[0]

    vial = _vial_for_dose(family, template.target_dose_mg) if not is_new_patient else MEDS[_FAMILY_KEYS[family][0]]

    return Glp1Preselection(
        family=family,
        is_new_patient=is_new_patient,
        one_month=MedicationLine(
            medication_key=vial.key,
            sig=template.sig,
            quantity=template.quantity,
            refills=template.refills,
            days_supply=template.days_supply,
        ),
        order_set_name=build_order_set_name(family, plan_months, is_new_patient),
    )


# ── Generic matching ───────────────────────────────────────────────────────

def _line_from_med(med):
    if med.sig_templates:
        first = med.sig_templates[0]
        return MedicationLine(med.key, first.sig, first.quantity, first.refills, first.days_supply)
    return MedicationLine(med.key, med.default_sig, med.default_quantity or '1', med.default_refills or '0')


def _non_glp1_catalog():
    return [med for med in MEDS.values() if med.category not in (GLP1_CATEGORY, SUPPLIES_CATEGORY)]


def match_treatment(treatment):
    """treatment 包含药名，或药名包含 treatment 的第一个词。"""
    treatment_lower = (treatment or '').strip().lower()
    if not treatment_lower:
        return None
    first_word = treatment_lower.split()[0]
    for med in _non_glp1_catalog():
        name_lower = med.name.lower()
        if name_lower in treatment_lower or first_word in name_lower:
            return med
    return None


def match_product(product):
    product_lower = (product or '').strip().lower()
    if not product_lower:
        return None
    for med in _non_glp1_catalog():
        name_lower = med.name.lower()
        if product_lower in name_lower or name_lower.split('/')[0].split()[0] in product_lower:
            return med
    return None


def auto_select_medication(treatment, product=None, glp1_info=None, plan_months=1, order_sets=()):
    """
    为处方表单预选药品。

    Returns:
        MedicationSelection；什么都匹配不到时 lines 为空。
    """
    preselection = (
        get_glp1_preselection(treatment, glp1_info, plan_months)
        or get_glp1_preselection(product, glp1_info, plan_months)
    )
    if preselection is not None:
        if plan_months > 1:
            order_set = find_order_set_by_name(order_sets, preselection.order_set_name)
            items = _items_of(order_set) if order_set is not None else []
            if items:
                lines = [
                    MedicationLine(
                        medication_key=str(item.get('medicationKey', '')),
                        sig=item.get('sig', ''),
                        quantity=str(item.get('quantity', '1')),
                        refills=str(item.get('refills', '0')),
                        days_supply=int(item.get('daysSupply') or 28),
                    )
                    for item in items
                ]
                return MedicationSelection(
                    lines=lines,
                    source='order_set',
                    order_set_name=_name_of(order_set),
                    is_new_patient=preselection.is_new_patient,
                )
            # 没配 OrderSet：不猜多月剂量，交给 provider 手选
            return MedicationSelection(
                order_set_name=preselection.order_set_name,
                is_new_patient=preselection.is_new_patient,
            )
        return MedicationSelection(
            lines=[preselection.one_month],
            source='glp1_preselection',
            order_set_name=preselection.order_set_name,
            is_new_patient=preselection.is_new_patient,
        )

    med = match_treatment(treatment)
    if med is not None:
        return MedicationSelection(lines=[_line_from_med(med)], source='treatment_match')

    med = match_product(product)
    if med is not None:
        return MedicationSelection(lines=[_line_from_med(med)], source='product_match')

    return MedicationSelection()


def count_glp1_vials(rxs) -> int:
    """处方行里 GLP-1 的总瓶数（quantity 非数字按 1 算）。"""
    total = 0
    for rx in rxs:
        if is_glp1(rx.get('medicationKey')):
            try:
                total += int(float(rx.get('quantity') or 1))
            except (TypeError, ValueError):
                total += 1
    return total
