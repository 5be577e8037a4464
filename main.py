# main.py

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

# Import Data Models & Logic
from constants import PROTOCOL_VERSION, VERSION
from deterioration import (
    calculate_asystole_vitals, calculate_deterioration_vitals, calculate_recovery_vitals,
    get_deterioration_stage, get_recovery_phase,
)
from doses import get_all_dose_calculations
from models import (
    DataTypeError, InterventionFlags, InterventionRequest, InterventionType,
    MentalStatus, PatientProfile, PatientState, Perfusion, Rhythm, Route,
    Stability, TransientState, TransientType, Vitals,
)
from physiology import apply_result, end_transient, process_intervention
from random_source import RandomSource
from safety import describe_nurse_catch, evaluate_adenosine_order, evaluate_cardioversion_order
from scenarios import SCENARIOS, create_initial_state, load_scenario

# --- 1. CONFIGURATION & LOGGING ---
logging.basicConfig(level=os.getenv("PEDISIM_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("pedisim.api")

app = FastAPI(
    title="PediSim Kernel API",
    version=VERSION,
    description="Deterministic clinical-outcome kernel for pediatric SVT simulation. \n\n"
                "**WARNING**: Training tool only. Not for clinical decision making.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"status": "active", "message": "PediSim kernel is running"}


@app.get("/health")
def health_check():
    return {"status": "active", "version": VERSION, "protocol": PROTOCOL_VERSION,
            "module": "pedisim-kernel"}


# --- 2. STRICT INPUT SCHEMA (The Guardrails) ---

class ProfileRequest(BaseModel):
    name: str = Field(..., min_length=1)
    age: float = Field(..., ge=0, le=18, description="Age in years")
    weight: float = Field(..., ge=0.5, le=150.0, description="Weight in kg")
    sex: str = Field(..., pattern="^(M|F)$", description="'M' or 'F'")
    chief_complaint: str = ""
    history: str = ""

    def to_domain(self) -> PatientProfile:
        return PatientProfile(**self.model_dump())


class VitalsRequest(BaseModel):
    heart_rate: int = Field(..., ge=0, le=350)
    systolic_bp: int = Field(..., ge=0, le=250)
    diastolic_bp: int = Field(..., ge=0, le=200)
    respiratory_rate: int = Field(..., ge=0, le=150)
    spo2: int = Field(..., ge=0, le=100)
    temperature: float = Field(98.6, ge=77.0, le=113.0, description="Fahrenheit")
    capillary_refill: float = Field(2.0, ge=0, le=20)

    def to_domain(self) -> Vitals:
        return Vitals(**self.model_dump())


class TransientRequest(BaseModel):
    type: TransientType
    start_time: int = Field(..., ge=0)
    duration: int = Field(..., ge=0)
    previous_rhythm: Rhythm
    previous_hr: int = Field(..., ge=0, le=350)

    def to_domain(self) -> TransientState:
        return TransientState(**dict(self))


class PatientStateRequest(BaseModel):
    profile: ProfileRequest
    rhythm: Rhythm
    vitals: VitalsRequest
    mental_status: MentalStatus = MentalStatus.ALERT
    perfusion: Perfusion = Perfusion.ADEQUATE
    stability: Stability = Stability.STABLE
    iv_access: bool = False
    io_access: bool = False
    sedated: bool = False
    intubated: bool = False
    time_in_current_rhythm: int = Field(0, ge=0)
    deterioration_stage: int = Field(0, ge=0, le=3)
    transient_state: Optional[TransientRequest] = None

    def to_domain(self) -> PatientState:
        return PatientState(
            profile=self.profile.to_domain(),
            rhythm=self.rhythm,
            vitals=self.vitals.to_domain(),
            mental_status=self.mental_status,
            perfusion=self.perfusion,
            stability=self.stability,
            iv_access=self.iv_access,
            io_access=self.io_access,
            sedated=self.sedated,
            intubated=self.intubated,
            time_in_current_rhythm=self.time_in_current_rhythm,
            deterioration_stage=self.deterioration_stage,
            transient_state=self.transient_state.to_domain() if self.transient_state else None,
        )


class AdenosineOrderRequest(BaseModel):
    dose_mg: float = Field(..., ge=0, description="Dose as ordered")
    prior_doses: int = Field(0, ge=0, description="Adenosine doses already given")
    weight_kg: float = Field(..., ge=0.5, le=150.0)


class CardioversionOrderRequest(BaseModel):
    energy_j: float = Field(..., ge=0)
    attempt: int = Field(1, ge=1)
    weight_kg: float = Field(..., ge=0.5, le=150.0)
    rhythm: Rhythm
    sedated: bool


class InterventionBody(BaseModel):
    state: PatientStateRequest
    type: InterventionType
    dose: Optional[float] = Field(None, ge=0, description="mg or J depending on intervention")
    route: Optional[Route] = None
    timestamp: int = Field(0, ge=0, description="ms from session start")
    verbalization: Optional[str] = None
    attempt: int = Field(1, ge=1)
    seed: Optional[int] = Field(None, description="Makes the outcome reproducible")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "state": {
                "profile": {"name": "Lily Henderson", "age": 5, "weight": 18.5, "sex": "F"},
                "rhythm": "SVT",
                "vitals": {"heart_rate": 220, "systolic_bp": 92, "diastolic_bp": 64,
                           "respiratory_rate": 26, "spo2": 97},
                "iv_access": True,
            },
            "type": "ADENOSINE",
            "dose": 1.85,
            "route": "IV",
            "timestamp": 60000,
            "seed": 42,
        }
    })

    def to_domain(self) -> InterventionRequest:
        return InterventionRequest(
            type=self.type,
            timestamp=self.timestamp,
            dose=self.dose,
            route=self.route,
            verbalization=self.verbalization,
            attempt=self.attempt,
        )


class ResolveTransientBody(BaseModel):
    state: PatientStateRequest
    will_convert: bool
    timestamp: int = Field(0, ge=0)
    seed: Optional[int] = None


class DeteriorationVitalsBody(BaseModel):
    elapsed_ms: int = Field(..., ge=0, description="Time in untreated SVT")
    oxygen_applied: bool = False
    iv_fluids_given: bool = False
    position_optimized: bool = False
    seed: Optional[int] = None


class AsystoleVitalsBody(BaseModel):
    elapsed_ms: int = Field(..., ge=0)


class RecoveryVitalsBody(BaseModel):
    elapsed_ms: int = Field(..., ge=0, description="Time since conversion")
    target_hr: int = Field(90, ge=40, le=200)
    seed: Optional[int] = None


class NewPatientBody(BaseModel):
    name: str
    age: float
    weight: float
    sex: str
    chief_complaint: str = ""
    history: str = ""
    rhythm: Rhythm = Rhythm.SVT
    hr: int
    systolic: int
    diastolic: int
    stable: bool = True
    mental_status: MentalStatus = MentalStatus.ALERT
    perfusion: Perfusion = Perfusion.ADEQUATE
    deterioration_stage: int = 0
    iv_access: bool = False


# --- 3. ENDPOINTS ---

def _clinical_error(e: Exception) -> HTTPException:
    logger.warning(f"Clinical Validation Error: {str(e)}")
    return HTTPException(status_code=422, detail=f"Clinical Validation Error: {str(e)}")


def _internal_error(e: Exception) -> HTTPException:
    logger.error(f"Internal Kernel Failure: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail="Internal Kernel Error")


@app.get("/doses")
def dosing_card(weight_kg: float = Query(..., ge=0.5, le=150.0, description="Weight in kg")):
    """Bedside dosing card: every drug and both shock energies for this weight."""
    return jsonable_encoder(get_all_dose_calculations(weight_kg))


@app.post("/orders/adenosine")
def screen_adenosine(order: AdenosineOrderRequest):
    evaluation = evaluate_adenosine_order(order.dose_mg, order.prior_doses, order.weight_kg)
    body = jsonable_encoder(evaluation)
    body["catch"] = describe_nurse_catch(evaluation.reason) if not evaluation.allow else None
    return body


@app.post("/orders/cardioversion")
def screen_cardioversion(order: CardioversionOrderRequest):
    evaluation = evaluate_cardioversion_order(
        order.energy_j, order.attempt, order.weight_kg, order.rhythm, order.sedated)
    body = jsonable_encoder(evaluation)
    body["catch"] = describe_nurse_catch(evaluation.reason) if not evaluation.allow else None
    return body


@app.post("/interventions")
def run_intervention(body: InterventionBody):
    """
    Runs one intervention against the supplied state and returns the outcome,
    the next state and the audit events. Send `seed` for a reproducible draw.
    """
    try:
        state = body.state.to_domain()
        request = body.to_domain()
        logger.info(f"Intervention {request.type.value} (dose={request.dose}) "
                    f"for {state.profile.weight}kg in {state.rhythm.value}")

        result = process_intervention(state, request, RandomSource(body.seed))
        new_state = apply_result(state, result)

        return {
            "result": jsonable_encoder(result, exclude={"events", "new_state"}),
            "state": jsonable_encoder(new_state),
            "events": [e.to_dict() for e in result.events],
        }

    except (ValueError, DataTypeError) as e:
        raise _clinical_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.post("/transients/resolve")
def resolve_transient(body: ResolveTransientBody):
    try:
        state = body.state.to_domain()
        new_state, events = end_transient(state, body.will_convert, RandomSource(body.seed), body.timestamp)
        return {
            "state": jsonable_encoder(new_state),
            "events": [e.to_dict() for e in events],
        }
    except (ValueError, DataTypeError) as e:
        raise _clinical_error(e)
    except Exception as e:
        raise _internal_error(e)


@app.post("/vitals/deterioration")
def deterioration_vitals(body: DeteriorationVitalsBody):
    flags = InterventionFlags(
        oxygen_applied=body.oxygen_applied,
        iv_fluids_given=body.iv_fluids_given,
        position_optimized=body.position_optimized,
    )
    vitals = calculate_deterioration_vitals(body.elapsed_ms, RandomSource(body.seed), flags)
    return {
        "stage": get_deterioration_stage(body.elapsed_ms).value,
        "vitals": jsonable_encoder(vitals),
    }


@app.post("/vitals/asystole")
def asystole_vitals(body: AsystoleVitalsBody):
    return {"vitals": jsonable_encoder(calculate_asystole_vitals(body.elapsed_ms))}


@app.post("/vitals/recovery")
def recovery_vitals(body: RecoveryVitalsBody):
    vitals = calculate_recovery_vitals(body.elapsed_ms, RandomSource(body.seed), body.target_hr)
    return {
        "phase": get_recovery_phase(body.elapsed_ms).value,
        "vitals": jsonable_encoder(vitals),
    }


@app.get("/scenarios")
def list_scenarios():
    return [
        {"id": s.id, "name": s.name, "difficulty": s.difficulty.value, "description": s.description}
        for s in SCENARIOS.values()
    ]


@app.get("/scenarios/{scenario_id}")
def get_scenario(scenario_id: str):
    if scenario_id not in SCENARIOS:
        raise HTTPException(status_code=404, detail=f"Unknown scenario '{scenario_id}'")

    loaded = load_scenario(scenario_id)
    return {
        "scenario": jsonable_encoder(SCENARIOS[scenario_id], exclude={"initial_state"}),
        "state": jsonable_encoder(loaded.state),
    }


@app.post("/patients")
def new_patient(body: NewPatientBody):
    """Builds a custom starting state. Validation problems come back as 422."""
    data = jsonable_encoder(body)
    loaded = create_initial_state(data)
    if not loaded.success:
        raise _clinical_error(ValueError("; ".join(loaded.errors)))
    return {"state": jsonable_encoder(loaded.state), "warnings": loaded.warnings}
